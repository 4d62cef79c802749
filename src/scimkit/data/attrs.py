import abc
import base64
import binascii
import math
import re
from collections.abc import Mapping, MutableSequence
from copy import copy
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Iterable, Optional, Union, final
from urllib.parse import urlparse

import precis_i18n.profile
from precis_i18n import get_profile

from scimkit.data.collections import CheckedList
from scimkit.data.complex import ComplexValue
from scimkit.data.constants import Direction, SCIMType
from scimkit.data.identifiers import AttrName, find_invalid_name_character
from scimkit.error import ValidationError


class AttributeMutability(str, Enum):
    READ_WRITE = "readWrite"
    READ_ONLY = "readOnly"
    WRITE_ONLY = "writeOnly"
    IMMUTABLE = "immutable"


class AttributeReturn(str, Enum):
    DEFAULT = "default"
    ALWAYS = "always"
    NEVER = "never"
    REQUEST = "request"


class AttributeUniqueness(str, Enum):
    NONE = "none"
    SERVER = "server"
    GLOBAL = "global"


_AttributeValidator = Callable[[Any], Any]

_NUMBER = re.compile(r"^-?\d+?(\.\d+)?$")
_DATETIME = re.compile(
    r"^(?P<year>-?(?:[1-9][0-9]*)?[0-9]{4})-(?P<month>1[0-2]|0[1-9])-"
    r"(?P<day>3[01]|0[1-9]|[12][0-9])"
    r"(?:T(?P<hour>2[0-3]|[01][0-9]):(?P<minute>[0-5][0-9]):(?P<second>[0-5][0-9])"
    r"(?:\.(?P<fraction>[0-9]+))?"
    r"(?P<zone>Z|[+-](?:2[0-3]|[01][0-9]):[0-5][0-9])?)?$"
)


def _type_name(value: Any) -> str:
    if isinstance(value, Mapping):
        return "complex"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "decimal"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _is_collection(value: Any) -> bool:
    return isinstance(value, (tuple, MutableSequence))


def _keyword(enum_type: type[Enum], key: str, value: Any, name: str) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return enum_type(value)
        except ValueError:
            raise TypeError(
                f"Attribute '{key}' value '{value}' not recognised "
                f"in attribute definition '{name}'"
            )
    raise TypeError(
        f"Attribute '{key}' value must be either string or boolean in attribute definition '{name}'"
    )


def _collection_or_false(key: str, value: Any, name: str) -> Union[bool, list]:
    if value is None or value is False:
        return False
    if not isinstance(value, (list, tuple)):
        raise TypeError(
            f"Attribute '{key}' value must be either a collection or 'false' "
            f"in attribute definition '{name}'"
        )
    return list(value)


class _FrozenAttributeMeta(abc.ABCMeta):
    def __call__(cls, *args, **kwargs):
        instance = super().__call__(*args, **kwargs)
        object.__setattr__(instance, "_frozen", True)
        return instance


class Attribute(abc.ABC, metaclass=_FrozenAttributeMeta):
    """
    Base class for all attributes. Attribute definitions are frozen once created: neither
    the name nor any characteristic can be replaced afterwards. Derivatives with a different
    set of sub-attributes can be created with `truncate` and `extend`.

    Args:
        name: Name of the attribute. Must contain only `$`, `-`, `_`, letters, and digits.
        description: Description of the attribute.
        required: Specifies if attribute is required, as per RFC-7643.
        multi_valued: Specifies if attribute is multivalued, as per RFC-7643.
        canonical_values: `False`, or collection of values the attribute accepts.
        case_exact: Specifies if attribute's values are case-sensitive, as per RFC-7643.
        mutability: `True` (read-write), `False` (read-only), or one of the mutability
            keywords, as per RFC-7643.
        returned: `True` (default), `False` (never), or one of the returned keywords,
            as per RFC-7643.
        uniqueness: One of the uniqueness keywords, or `False` if not applicable.
        direction: Request direction the attribute participates in: `in`, `out`, or `both`.
        validators: Additional validators, called with every coerced value if the built-in
            coercion succeeds. A validator rejects the value by raising `ValueError`
            or `TypeError`.

    Raises:
        TypeError: If any of the characteristics is not valid.
    """

    def __init__(
        self,
        name: str,
        *,
        description: str = "",
        required: bool = False,
        multi_valued: bool = False,
        canonical_values: Union[bool, Iterable[Any]] = False,
        case_exact: bool = False,
        mutability: Union[bool, str, AttributeMutability] = True,
        returned: Union[bool, str, AttributeReturn] = True,
        uniqueness: Union[bool, str, AttributeUniqueness] = AttributeUniqueness.NONE,
        direction: Union[str, Direction] = Direction.BOTH,
        validators: Optional[Iterable[_AttributeValidator]] = None,
    ):
        if not isinstance(name, str):
            raise TypeError("Required parameter 'name' missing from Attribute instantiation")
        if invalid_char := find_invalid_name_character(name):
            raise TypeError(
                f"Invalid character '{invalid_char}' in name of attribute definition '{name}'"
            )
        self._name = AttrName(name)
        self._mutability = _keyword(AttributeMutability, "mutability", mutability, name)
        self._returned = _keyword(AttributeReturn, "returned", returned, name)
        self._uniqueness = _keyword(AttributeUniqueness, "uniqueness", uniqueness, name)
        self._canonical_values = _collection_or_false("canonicalValues", canonical_values, name)
        try:
            self._direction = Direction(direction)
        except ValueError:
            raise TypeError(
                f"Attribute 'direction' value '{direction}' not recognised "
                f"in attribute definition '{name}'"
            )
        self._description = description
        self._required = bool(required)
        self._multi_valued = bool(multi_valued)
        self._case_exact = bool(case_exact)
        self._validators = tuple(validators or ())

    def __setattr__(self, key: str, value: Any) -> None:
        if self.__dict__.get("_frozen"):
            raise AttributeError(f"attribute definition '{self.__dict__['_name']}' is frozen")
        super().__setattr__(key, value)

    def __delattr__(self, key: str) -> None:
        raise AttributeError(f"attribute definition '{self._name}' is frozen")

    @classmethod
    @abc.abstractmethod
    def scim_type(cls) -> SCIMType:
        """Returns type of the attribute, as defined in RFC-7643."""

    @classmethod
    def from_type(
        cls,
        type_: Union[str, SCIMType],
        name: str,
        sub_attributes: Optional[Iterable["Attribute"]] = None,
        **kwargs: Any,
    ) -> "Attribute":
        """
        Creates attribute of the provided SCIM type.

        Raises:
            TypeError: If the type is not recognised, or sub-attributes are provided for
                non-complex type. Any of `Attribute` initializer errors is raised as well.
        """
        for param, value in (("type", type_), ("name", name)):
            if not isinstance(value, str):
                raise TypeError(
                    f"Required parameter '{param}' missing from Attribute instantiation"
                )
        attr_type = _ATTRIBUTE_TYPES.get(str(type_))
        if attr_type is None:
            raise TypeError(f"Type '{type_}' not recognised in attribute definition '{name}'")
        sub_attributes = list(sub_attributes or [])
        if attr_type is Complex:
            return Complex(name, sub_attributes=sub_attributes, **kwargs)
        if sub_attributes:
            raise TypeError(
                "Attribute type must be 'complex' when subAttributes are specified "
                f"in attribute definition '{name}'"
            )
        return attr_type(name, **kwargs)

    @classmethod
    def from_dict(cls, definition: Mapping[str, Any]) -> "Attribute":
        """
        Creates attribute from its definition, as specified in RFC-7643, section 7.
        The output of `to_dict` can be passed here to recreate the attribute.
        """
        kwargs: dict[str, Any] = {
            "description": definition.get("description", ""),
            "required": definition.get("required", False),
            "multi_valued": definition.get("multiValued", False),
            "case_exact": definition.get("caseExact", False),
            "canonical_values": definition.get("canonicalValues", False),
            "mutability": definition.get("mutability", True),
            "returned": definition.get("returned", True),
        }
        if "uniqueness" in definition:
            kwargs["uniqueness"] = definition["uniqueness"]
        if definition.get("type") == SCIMType.REFERENCE:
            kwargs["reference_types"] = definition.get("referenceTypes", False)
        return cls.from_type(
            definition.get("type"),
            definition.get("name"),
            sub_attributes=[
                cls.from_dict(sub_attr) for sub_attr in definition.get("subAttributes", [])
            ],
            **kwargs,
        )

    @property
    def name(self) -> AttrName:
        """Name of the attribute."""
        return self._name

    @property
    def description(self) -> str:
        """Description of the attribute."""
        return self._description

    @property
    def required(self) -> bool:
        """Specifies if attribute is required, as per RFC-7643."""
        return self._required

    @property
    def multi_valued(self) -> bool:
        """Specifies if attribute is multivalued, as per RFC-7643."""
        return self._multi_valued

    @property
    def canonical_values(self) -> Union[bool, list]:
        """Canonical values of the attribute, or `False` if any value is accepted."""
        return list(self._canonical_values) if self._canonical_values else False

    @property
    def case_exact(self) -> bool:
        """Specifies the sensitivity of the attribute, as per RFC-7643."""
        return self._case_exact

    @property
    def mutability(self) -> Union[bool, AttributeMutability]:
        """Attribute's mutability, as declared."""
        return self._mutability

    @property
    def returned(self) -> Union[bool, AttributeReturn]:
        """Attribute's `returned` characteristic, as declared."""
        return self._returned

    @property
    def uniqueness(self) -> Union[bool, AttributeUniqueness]:
        """Attribute's uniqueness, as declared."""
        return self._uniqueness

    @property
    def direction(self) -> Direction:
        """Request direction the attribute participates in."""
        return self._direction

    @property
    def validators(self) -> list[_AttributeValidator]:
        return list(self._validators)

    @property
    def mutability_keyword(self) -> AttributeMutability:
        """
        Mutability keyword, as specified in RFC-7643. Mutable attributes that are only accepted
        from clients (direction `in`) are `writeOnly`.
        """
        if isinstance(self._mutability, AttributeMutability):
            return self._mutability
        if self._mutability:
            if self._direction == Direction.IN:
                return AttributeMutability.WRITE_ONLY
            return AttributeMutability.READ_WRITE
        return AttributeMutability.READ_ONLY

    @property
    def returned_keyword(self) -> AttributeReturn:
        """Returned keyword, as specified in RFC-7643."""
        if isinstance(self._returned, AttributeReturn):
            return self._returned
        return AttributeReturn.DEFAULT if self._returned else AttributeReturn.NEVER

    @property
    def is_mutable(self) -> bool:
        """Whether already defined value of the attribute can be changed."""
        return self._mutability is True or self._mutability in (
            AttributeMutability.READ_WRITE,
            AttributeMutability.WRITE_ONLY,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._name})"

    def coerce(self, value: Any, direction: Union[str, Direction] = Direction.BOTH) -> Any:
        """
        Validates and normalizes the provided value according to attribute's specification.
        `None` stands for undefined value.

        Returns:
            Coerced value. Multi-valued attributes produce `CheckedList`, that keeps
            validating items inserted later. `None` if the value is undefined, or the attribute
            does not participate in the requested direction.

        Raises:
            ValidationError: If the value does not meet attribute's specification.
        """
        direction = Direction(direction)
        if self._direction not in (Direction.BOTH, direction):
            return None
        if value is None:
            if self._required:
                raise ValidationError.missing_required(self._name)
            return None
        if self._multi_valued and not _is_collection(value):
            raise ValidationError.expected_collection(self._name)
        if not self._multi_valued and _is_collection(value):
            raise ValidationError.unexpected_collection(self._name)

        items = list(value) if self._multi_valued else [value]
        if self._canonical_values and any(
            item not in self._canonical_values for item in items
        ):
            raise ValidationError.non_canonical(self._name)

        coerced = [self._coerce_item(item, direction) for item in items]
        if not self._multi_valued:
            return coerced[0]
        return CheckedList.trusted(coerced, check=partial(self._check_item, direction=direction))

    def _check_item(self, value: Any, direction: Direction = Direction.BOTH) -> Any:
        if self._canonical_values and value not in self._canonical_values:
            raise ValidationError.not_canonical_value(self._name, value)
        return self._coerce_item(value, direction)

    def _coerce_item(self, value: Any, direction: Direction) -> Any:
        if _is_collection(value):
            raise ValidationError.single_value_expected(self._name, self.scim_type())
        coerced = self._coerce_value(value, direction)
        for validator in self._validators:
            try:
                validator(coerced)
            except ValidationError:
                raise
            except (TypeError, ValueError) as error:
                raise ValidationError.bad_value(self._name, coerced, str(error))
        return coerced

    @abc.abstractmethod
    def _coerce_value(self, value: Any, direction: Direction) -> Any:
        """Coerces single, non-empty value."""

    def _expect_scalar(self, value: Any) -> None:
        if isinstance(value, Mapping):
            raise ValidationError.bad_type(self._name, self.scim_type(), "complex")

    def truncate(self, sub_attributes: Any) -> "Attribute":
        """
        Returns derivative of the attribute without the provided sub-attributes (names or
        instances). Non-complex attributes, and attributes not declaring any of the provided
        sub-attributes, are returned unchanged.
        """
        return self

    def extend(self, sub_attribute: "Attribute") -> "Attribute":
        """
        Returns derivative of the attribute with the provided sub-attribute appended.

        Raises:
            TypeError: If the attribute is not complex.
        """
        raise TypeError(
            f"Attribute '{self._name}' is not of type 'complex' and can not declare subAttributes"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Converts the attribute to a dictionary. The contents meet the requirements
        of the schema definition, as per RFC-7643, section 7.

        Returns:
            Representation of the attribute
        """
        output: dict[str, Any] = {"name": str(self._name), "type": str(self.scim_type())}
        output.update(self._reference_types_dict())
        output.update(
            {
                "multiValued": self._multi_valued,
                "description": self._description,
                "required": self._required,
            }
        )
        output.update(self._sub_attributes_dict())
        if self._case_exact or self.scim_type() in (
            SCIMType.STRING,
            SCIMType.REFERENCE,
            SCIMType.BINARY,
        ):
            output["caseExact"] = self._case_exact
        if self._canonical_values:
            output["canonicalValues"] = list(self._canonical_values)
        output["mutability"] = self.mutability_keyword.value
        output["returned"] = self.returned_keyword.value
        if self.scim_type() != SCIMType.BOOLEAN and self._uniqueness is not False:
            output["uniqueness"] = (
                self._uniqueness.value
                if isinstance(self._uniqueness, AttributeUniqueness)
                else AttributeUniqueness.NONE.value
            )
        return output

    def _reference_types_dict(self) -> dict[str, Any]:
        return {}

    def _sub_attributes_dict(self) -> dict[str, Any]:
        return {}


@final
class Boolean(Attribute):
    """
    Represents **boolean** attribute, as specified in RFC-7643.
    """

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.BOOLEAN

    def _coerce_value(self, value: Any, direction: Direction) -> bool:
        self._expect_scalar(value)
        return bool(value)


@final
class Decimal(Attribute):
    """
    Represents **decimal** attribute, as specified in RFC-7643.
    """

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.DECIMAL

    def _coerce_value(self, value: Any, direction: Direction) -> float:
        self._expect_scalar(value)
        if isinstance(value, float) and not isinstance(value, bool) and math.isfinite(value):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            raise ValidationError.bad_type(self._name, "decimal", "integer")
        if isinstance(value, str) and (match := _NUMBER.match(value)):
            if match.group(1) is None:
                raise ValidationError.bad_type(self._name, "decimal", "integer")
            return float(value)
        raise ValidationError.bad_type(self._name, "decimal", _type_name(value))


@final
class Integer(Attribute):
    """
    Represents **integer** attribute, as specified in RFC-7643.
    """

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.INTEGER

    def _coerce_value(self, value: Any, direction: Direction) -> int:
        self._expect_scalar(value)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float):
            raise ValidationError.bad_type(self._name, "integer", "decimal")
        if isinstance(value, str) and (match := _NUMBER.match(value)):
            if match.group(1) is not None:
                raise ValidationError.bad_type(self._name, "integer", "decimal")
            return int(value)
        raise ValidationError.bad_type(self._name, "integer", _type_name(value))


@final
class String(Attribute):
    """
    Represents **string** attribute, as specified in RFC-7643.

    Args:
        name: The name of the attribute
        precis: PRECIS profile that should be applied for the string attribute, when
            comparing values. By default, **OpaqueString** profile is used
        kwargs: The same keyword arguments base class receives
    """

    def __init__(
        self,
        name: str,
        *,
        precis: precis_i18n.profile.Profile = get_profile("OpaqueString"),
        **kwargs: Any,
    ):
        super().__init__(name, **kwargs)
        self._precis = precis

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.STRING

    @property
    def precis(self) -> precis_i18n.profile.Profile:
        """
        Returns PRECIS profile of the attribute.
        """
        return self._precis

    def _coerce_value(self, value: Any, direction: Direction) -> str:
        self._expect_scalar(value)
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ValidationError.bad_type(self._name, "string", _type_name(value))
        return str(value)


@final
class DateTime(Attribute):
    """
    Represents **dateTime** attribute, as specified in RFC-7643. Values are normalized
    to ISO-8601 strings in UTC with millisecond precision, e.g. `2024-01-31T10:00:00.000Z`.
    Values without time zone are treated as UTC.
    """

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.DATETIME

    def _coerce_value(self, value: Any, direction: Direction) -> str:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str):
            parsed = parse_datetime(value)
        else:
            parsed = None
        if parsed is None:
            raise ValidationError.invalid_date(self._name)
        return format_datetime(parsed)


def parse_datetime(value: str) -> Optional[datetime]:
    """
    Parses ISO-8601 date (optionally followed by time and time zone) to timezone-aware
    datetime. Values without time zone are treated as UTC.

    Returns:
        Parsed datetime, or `None` if the value is not a valid date.
    """
    match = _DATETIME.match(value)
    if match is None:
        return None
    parts = match.groupdict()
    tz = timezone.utc
    if parts["zone"] not in (None, "Z"):
        sign = -1 if parts["zone"][0] == "-" else 1
        hours, minutes = parts["zone"][1:].split(":")
        tz = timezone(sign * timedelta(hours=int(hours), minutes=int(minutes)))
    try:
        return datetime(
            int(parts["year"]),
            int(parts["month"]),
            int(parts["day"]),
            int(parts["hour"] or 0),
            int(parts["minute"] or 0),
            int(parts["second"] or 0),
            int((parts["fraction"] or "0")[:6].ljust(6, "0")),
            tzinfo=tz,
        )
    except ValueError:
        return None


def format_datetime(value: datetime) -> str:
    """
    Formats the datetime as ISO-8601 string in UTC, with millisecond precision.
    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}T"
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}."
        f"{value.microsecond // 1000:03d}Z"
    )


@final
class Binary(Attribute):
    """
    Represents **binary** attribute, as specified in RFC-7643. Accepts base64-encoded
    strings (padding may be omitted) and raw bytes, which are base64-encoded.
    """

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.BINARY

    def _coerce_value(self, value: Any, direction: Direction) -> str:
        if isinstance(value, Mapping):
            raise ValidationError.bad_type(self._name, "binary", "complex")
        if isinstance(value, (bytes, bytearray)):
            return base64.b64encode(value).decode("ascii")
        if not isinstance(value, str):
            raise ValidationError.bad_binary(self._name)
        padded = value
        if (padding := len(value) % 4) != 0:
            padded += "=" * (4 - padding)
        try:
            base64.b64decode(padded, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError.bad_binary(self._name)
        return value


@final
class Reference(Attribute):
    """
    Represents **reference** attribute, as specified in RFC-7643.

    Args:
        name: The name of the attribute.
        reference_types: types of the references, supported by the attribute. `external`
            accepts URLs with a host, `uri` accepts any URI (absolute or relative), and any
            other item is treated as a resource type name, accepting values that start
            with it or contain `/<resource type>`.
        kwargs: The same keyword arguments base class receives.
    """

    def __init__(
        self,
        name: str,
        *,
        reference_types: Union[bool, Iterable[str]] = False,
        **kwargs: Any,
    ):
        super().__init__(name, **kwargs)
        self._reference_types = _collection_or_false("referenceTypes", reference_types, name)

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.REFERENCE

    @property
    def reference_types(self) -> Union[bool, list[str]]:
        """
        Reference types, supported by the attribute.
        """
        return list(self._reference_types) if self._reference_types is not False else False

    def _reference_types_dict(self) -> dict[str, Any]:
        return {"referenceTypes": self.reference_types}

    def _coerce_value(self, value: Any, direction: Direction) -> str:
        self._expect_scalar(value)
        if not self._reference_types:
            raise ValidationError.no_reference_types(self._name)
        value = str(value)
        resource_types = [t for t in self._reference_types if t not in ("uri", "external")]
        if any(value.startswith(t) or f"/{t}" in value for t in resource_types):
            return value
        parsed = urlparse(value)
        if "external" in self._reference_types and parsed.scheme and parsed.hostname:
            return value
        if "uri" in self._reference_types and (parsed.scheme or value.startswith("/")):
            return value
        raise ValidationError.bad_reference(self._name, self._reference_types)


@final
class Complex(Attribute):
    """
    Represents **complex** attribute, as specified in RFC-7643.

    Values are coerced to records of `record_type`, generated for the attribute at declaration.

    Args:
        name: Name of the attribute.
        sub_attributes: Complex sub-attributes. All attributes but `Complex`
            can be sub-attributes. If not specified, and the attribute is multivalued,
            the default sub-attributes are used, as specified in
            [RFC-7643, section 2.4](https://www.rfc-editor.org/rfc/rfc7643#section-2.4).
        kwargs: The same keyword arguments the base class receives
    """

    def __init__(
        self,
        name: str,
        *,
        sub_attributes: Optional[Iterable[Attribute]] = None,
        **kwargs: Any,
    ):
        sub_attributes = list(sub_attributes or [])
        for attr in sub_attributes:
            if isinstance(attr, Complex):
                raise TypeError("complex attributes can not contain complex sub-attributes")

        super().__init__(name, **kwargs)
        if not sub_attributes and self._multi_valued:
            sub_attributes = [
                String("value"),
                String("display", mutability=AttributeMutability.IMMUTABLE),
                String("type"),
                Boolean("primary"),
                Reference("$ref", reference_types=["uri"]),
            ]
        self._sub_attributes = tuple(sub_attributes)
        self._record_type = ComplexValue.bind(self)

    @classmethod
    def scim_type(cls) -> SCIMType:
        return SCIMType.COMPLEX

    @property
    def sub_attributes(self) -> list[Attribute]:
        """
        Complex sub-attributes.
        """
        return list(self._sub_attributes)

    @property
    def record_type(self) -> type[ComplexValue]:
        """
        Record type the values of the attribute are coerced to.
        """
        return self._record_type

    def sub_attribute(self, name: str) -> Optional[Attribute]:
        """
        Returns sub-attribute with the provided name (case-insensitive), if declared.
        """
        for sub_attr in self._sub_attributes:
            if sub_attr.name == name:
                return sub_attr
        return None

    def _coerce_value(self, value: Any, direction: Direction) -> ComplexValue:
        return self._record_type.build(value, direction)

    def _derive(self, sub_attributes: Iterable[Attribute]) -> "Complex":
        derived = copy(self)
        object.__setattr__(derived, "_sub_attributes", tuple(sub_attributes))
        object.__setattr__(derived, "_record_type", ComplexValue.bind(derived))
        return derived

    def truncate(self, sub_attributes: Any) -> "Complex":
        if not isinstance(sub_attributes, (list, tuple)):
            sub_attributes = [sub_attributes]
        remaining = [
            sub_attr
            for sub_attr in self._sub_attributes
            if not any(
                sub_attr is target or (isinstance(target, str) and sub_attr.name == target)
                for target in sub_attributes
            )
        ]
        if len(remaining) == len(self._sub_attributes):
            return self
        return self._derive(remaining)

    def extend(self, sub_attribute: Attribute) -> "Complex":
        if isinstance(sub_attribute, Complex):
            raise TypeError("complex attributes can not contain complex sub-attributes")
        if self.sub_attribute(sub_attribute.name) is not None:
            raise TypeError(
                f"Attribute '{self._name}' already declares subAttribute '{sub_attribute.name}'"
            )
        return self._derive([*self._sub_attributes, sub_attribute])

    def _sub_attributes_dict(self) -> dict[str, Any]:
        return {"subAttributes": [sub_attr.to_dict() for sub_attr in self._sub_attributes]}


_ATTRIBUTE_TYPES: dict[str, type[Attribute]] = {
    attr_type.scim_type().value: attr_type
    for attr_type in (String, Complex, Boolean, Binary, Decimal, Integer, DateTime, Reference)
}
