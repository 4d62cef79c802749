from collections.abc import Mapping, MutableMapping, MutableSequence
from typing import TYPE_CHECKING, Any, Iterator, Optional

if TYPE_CHECKING:
    from scimkit.data.attrs import Attribute


class ScimData(MutableMapping):
    """
    Mapping that implements reading and updating data which is in line with SCIM requirements.
    Keys are case-insensitive, as attribute names are, and the casing of the first assignment
    is preserved. Assigning `None` to a key unsets it, since SCIM does not distinguish between
    unassigned and null values.

    Examples:
        >>> data = ScimData({"userName": "bjensen"})
        >>> data["USERNAME"]
        'bjensen'
        >>> data["userName"] = None
        >>> "username" in data
        False
    """

    def __init__(self, d: Optional[Mapping[str, Any]] = None):
        self._data: dict[str, Any] = {}
        self._lower_case_to_original: dict[str, str] = {}
        if d is not None:
            for key, value in d.items():
                self[key] = value

    def __repr__(self):
        return f"{self.__class__.__name__}({str(self._data)})"

    def _original_key(self, key: str) -> Optional[str]:
        if not isinstance(key, str):
            return None
        return self._lower_case_to_original.get(key.lower())

    def __getitem__(self, key: str) -> Any:
        original = self._original_key(key)
        if original is None:
            raise KeyError(key)
        return self._data[original]

    def __setitem__(self, key: str, value: Any) -> None:
        self._store(key, value)

    def __delitem__(self, key: str) -> None:
        if not self._discard(key):
            raise KeyError(key)

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._original_key(key) is not None

    def _store(self, key: str, value: Any) -> None:
        if value is None:
            self._discard(key)
            return
        original = self._original_key(key)
        if original is None:
            original = key
            self._lower_case_to_original[key.lower()] = key
        self._data[original] = value

    def _discard(self, key: str) -> bool:
        original = self._original_key(key)
        if original is None:
            return False
        self._data.pop(original)
        self._lower_case_to_original.pop(key.lower())
        return True

    def attribute_for(self, key: str) -> Optional["Attribute"]:
        """
        Returns definition of the attribute stored under the provided key, if the data is bound
        to any. Plain data is not bound to attribute definitions.
        """
        return None

    def to_dict(self) -> dict[str, Any]:
        """
        Converts the `ScimData` to ordinary dictionary.
        """
        return {key: _to_plain(value) for key, value in self._data.items()}

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Mapping):
            return False

        if not isinstance(other, ScimData):
            other = ScimData(other)

        if len(self) != len(other):
            return False

        for key, value in self._data.items():
            if key not in other or other[key] != value:
                return False

        return True

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)


def _to_plain(value: Any) -> Any:
    if isinstance(value, ScimData):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, MutableSequence)):
        return [_to_plain(item) for item in value]
    return value
