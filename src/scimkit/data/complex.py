from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, Optional, Union

from scimkit.data.constants import Direction
from scimkit.data.scim_data import ScimData
from scimkit.error import ScimError, ScimErrorType, ValidationError

if TYPE_CHECKING:
    from scimkit.data.attrs import Attribute, Complex


class ComplexValue(ScimData):
    """
    Value of a complex attribute. Each `Complex` attribute binds its own subclass at declaration
    time, so the record knows its sub-attributes before any value is assigned.

    Assigning a key coerces the value through the matching sub-attribute. Keys are looked up
    case-insensitively and stored with the declared casing. Undeclared keys are rejected,
    and sub-attributes that are not mutable can not be changed once they hold a value.

    Examples:
        >>> name = Complex("name", sub_attributes=[String("givenName"), String("familyName")])
        >>> value = name.record_type.build({"GIVENNAME": "Barbara"})
        >>> value["familyName"] = "Jensen"
        >>> value.to_dict()
        {'givenName': 'Barbara', 'familyName': 'Jensen'}
    """

    attribute: ClassVar["Complex"]

    def __init__(
        self,
        d: Optional[Mapping[str, Any]] = None,
        *,
        direction: Union[str, Direction] = Direction.BOTH,
    ):
        self._direction = Direction(direction)
        super().__init__(d)

    @classmethod
    def bind(cls, attribute: "Complex") -> type["ComplexValue"]:
        """
        Creates record type bound to the provided complex attribute.
        """
        return type(f"{cls.__name__}[{attribute.name}]", (cls,), {"attribute": attribute})

    @classmethod
    def build(
        cls, value: Any, direction: Union[str, Direction] = Direction.BOTH
    ) -> "ComplexValue":
        """
        Builds the record from the provided mapping. Keys may come in any order and
        any casing.

        Raises:
            ValidationError: If the value is not a mapping, or any of its items can not be
                coerced by the respective sub-attribute.
        """
        if not isinstance(value, Mapping):
            raise ValidationError.expected_complex(cls.attribute.name, value)
        return cls(value, direction=direction)

    @property
    def direction(self) -> Direction:
        """Direction the record was coerced for."""
        return self._direction

    def select(self, keys: Iterable[str]) -> "ComplexValue":
        """
        Returns new record of the same type, containing only the provided keys.
        """
        selected = type(self)(direction=self._direction)
        for key in keys:
            if key in self:
                selected._store(self._original_key(key), self[key])
        return selected

    def attribute_for(self, key: str) -> Optional["Attribute"]:
        return self.attribute.sub_attribute(key) if isinstance(key, str) else None

    def _sub_attribute(self, key: str) -> "Attribute":
        sub_attr = self.attribute_for(key)
        if sub_attr is None:
            raise ValidationError.undeclared_sub_attribute(self.attribute.name, key)
        return sub_attr

    def _ensure_mutable(self, sub_attr: "Attribute", value: Any) -> None:
        existing = self.get(sub_attr.name)
        if not sub_attr.is_mutable and existing is not None and existing != value:
            raise ScimError(
                400,
                ScimErrorType.MUTABILITY,
                f"Attribute '{sub_attr.name}' already defined and is not mutable",
            )

    def __setitem__(self, key: str, value: Any) -> None:
        sub_attr = self._sub_attribute(key)
        try:
            coerced = sub_attr.coerce(value, self._direction)
        except ValidationError as error:
            raise error.add_context(f" from complex attribute '{self.attribute.name}'")
        self._ensure_mutable(sub_attr, coerced)
        self._store(str(sub_attr.name), coerced)

    def __delitem__(self, key: str) -> None:
        sub_attr = self._sub_attribute(key)
        if key not in self:
            raise KeyError(key)
        self[str(sub_attr.name)] = None
