from collections.abc import MutableSequence
from typing import Any, Callable, Iterable, Iterator, Union, overload


class CheckedList(MutableSequence):
    """
    Ordered collection of values of a multi-valued attribute. Every inserted or assigned item
    goes through the `check` routine of the owning attribute first, so the collection stays
    valid after initial coercion. The routine returns the normalized item or raises.

    Examples:
        >>> emails = CheckedList(["a@example.com"], check=str.lower)
        >>> emails.append("B@EXAMPLE.COM")
        >>> emails
        CheckedList(['a@example.com', 'b@example.com'])
    """

    def __init__(self, items: Iterable[Any] = (), *, check: Callable[[Any], Any]):
        self._check = check
        self._items = [check(item) for item in items]

    @classmethod
    def trusted(cls, items: Iterable[Any], *, check: Callable[[Any], Any]) -> "CheckedList":
        """
        Creates a collection from already checked items.
        """
        checked = cls(check=check)
        checked._items = list(items)
        return checked

    def derive(self, items: Iterable[Any]) -> "CheckedList":
        """
        Creates a collection of already checked items, guarded by the same `check` routine.
        """
        return self.trusted(items, check=self._check)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._items!r})"

    @overload
    def __getitem__(self, index: int) -> Any: ...

    @overload
    def __getitem__(self, index: slice) -> list: ...

    def __getitem__(self, index: Union[int, slice]) -> Any:
        if isinstance(index, slice):
            return self._items[index]
        return self._items[index]

    def __setitem__(self, index: Union[int, slice], value: Any) -> None:
        if isinstance(index, slice):
            self._items[index] = [self._check(item) for item in value]
        else:
            self._items[index] = self._check(value)

    def __delitem__(self, index: Union[int, slice]) -> None:
        del self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def insert(self, index: int, value: Any) -> None:
        self._items.insert(index, self._check(value))

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, CheckedList):
            return self._items == other._items
        if isinstance(other, (list, tuple)):
            return self._items == list(other)
        return False

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def copy(self) -> list:
        return list(self._items)
