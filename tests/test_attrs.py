from datetime import datetime, timezone

import pytest

from scimkit.data.attrs import (
    Attribute,
    AttributeMutability,
    Binary,
    Boolean,
    Complex,
    DateTime,
    Decimal,
    Integer,
    Reference,
    String,
)
from scimkit.data.collections import CheckedList
from scimkit.error import ValidationError

_BAD_TYPE = "Attribute 'attr' expected value type '{}' but found type '{}'"


@pytest.mark.parametrize("multi_valued", (False, True))
@pytest.mark.parametrize(
    "attr_type", (String, Boolean, Decimal, Integer, DateTime, Binary, Reference, Complex)
)
def test_undefined_value_is_coerced_to_none(attr_type, multi_valued):
    assert attr_type("attr", multi_valued=multi_valued).coerce(None) is None


@pytest.mark.parametrize("multi_valued", (False, True))
def test_missing_required_value_is_reported(multi_valued):
    attr = String("attr", required=True, multi_valued=multi_valued)

    with pytest.raises(ValidationError, match="Required attribute 'attr' is missing"):
        attr.coerce(None)


@pytest.mark.parametrize(
    ("attr", "expected_type"),
    (
        (String("attr"), "string"),
        (Boolean("attr"), "boolean"),
        (Decimal("attr"), "decimal"),
        (Integer("attr"), "integer"),
        (Binary("attr"), "binary"),
        (Reference("attr", reference_types=["uri"]), "reference"),
    ),
)
def test_complex_value_is_rejected_for_simple_attribute(attr, expected_type):
    with pytest.raises(
        ValidationError,
        match=f"Attribute 'attr' expected value type '{expected_type}' but found type 'complex'",
    ):
        attr.coerce({"value": 1})


@pytest.mark.parametrize(
    ("attr", "value", "expected"),
    (
        (String("attr"), "bjensen", "bjensen"),
        (String("attr"), 42, "42"),
        (Integer("attr"), 42, 42),
        (Integer("attr"), "42", 42),
        (Decimal("attr"), 4.2, 4.2),
        (Decimal("attr"), "4.2", 4.2),
        (Boolean("attr"), False, False),
        (Binary("attr"), b"hello", "aGVsbG8="),
        (Binary("attr"), "aGVsbG8", "aGVsbG8"),
        (DateTime("attr"), "2024-01-31T10:00:00+01:00", "2024-01-31T09:00:00.000Z"),
        (DateTime("attr"), "2024-01-31", "2024-01-31T00:00:00.000Z"),
        (DateTime("attr"), "2024-01-31T10:00:00.123456Z", "2024-01-31T10:00:00.123Z"),
        (
            DateTime("attr"),
            datetime(2024, 1, 31, 10, tzinfo=timezone.utc),
            "2024-01-31T10:00:00.000Z",
        ),
    ),
)
def test_value_is_normalised(attr, value, expected):
    assert attr.coerce(value) == expected


@pytest.mark.parametrize(
    ("attr", "value", "expected"),
    (
        (Integer("attr"), 4.2, _BAD_TYPE.format("integer", "decimal")),
        (Integer("attr"), "4.2", _BAD_TYPE.format("integer", "decimal")),
        (Integer("attr"), True, _BAD_TYPE.format("integer", "boolean")),
        (Decimal("attr"), 42, _BAD_TYPE.format("decimal", "integer")),
        (Decimal("attr"), "abc", _BAD_TYPE.format("decimal", "string")),
        (String("attr"), True, _BAD_TYPE.format("string", "boolean")),
        (DateTime("attr"), "yesterday", "Attribute 'attr' expected value to be a valid date"),
        (DateTime("attr"), "2024-02-30", "Attribute 'attr' expected value to be a valid date"),
        (DateTime("attr"), 1706695200, "Attribute 'attr' expected value to be a valid date"),
        (
            Binary("attr"),
            "not base64!",
            "Attribute 'attr' expected value type 'binary' to be base64 encoded string "
            "or binary octet stream",
        ),
    ),
)
def test_bad_value_is_rejected(attr, value, expected):
    with pytest.raises(ValidationError) as exc_info:
        attr.coerce(value)

    assert str(exc_info.value) == expected


@pytest.mark.parametrize(
    ("reference_types", "value"),
    (
        (["external"], "https://example.com/photos/1"),
        (["uri"], "/Users/2819c223"),
        (["uri"], "urn:ietf:params:scim:schemas:core:2.0:User"),
        (["User"], "https://example.com/v2/Users/2819c223"),
        (["User", "Group"], "Group/e9e30dba"),
    ),
)
def test_reference_of_supported_type_is_accepted(reference_types, value):
    assert Reference("ref", reference_types=reference_types).coerce(value) == value


def test_reference_of_unsupported_type_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        Reference("ref", reference_types=["external"]).coerce("/Users/2819c223")

    assert str(exc_info.value) == (
        "Attribute 'ref' expected value type 'reference' to refer to one of: 'external'"
    )


def test_reference_without_reference_types_can_not_be_coerced():
    with pytest.raises(
        ValidationError,
        match="Attribute 'ref' with type 'reference' does not specify any referenceTypes",
    ):
        Reference("ref").coerce("https://example.com")


def test_multi_valued_attribute_expects_collection():
    with pytest.raises(ValidationError, match="Attribute 'attr' expected to be a collection"):
        String("attr", multi_valued=True).coerce("value")


def test_single_valued_attribute_rejects_collection():
    with pytest.raises(
        ValidationError, match="Attribute 'attr' is not multi-valued and must not be a collection"
    ):
        String("attr").coerce(["value"])


def test_nested_collection_is_rejected():
    with pytest.raises(
        ValidationError, match="Attribute 'attr' expected single value of type 'string'"
    ):
        String("attr", multi_valued=True).coerce([["value"]])


def test_multi_valued_attribute_is_coerced_to_checked_list():
    attr = Integer("attr", multi_valued=True)

    coerced = attr.coerce([1, "2"])
    coerced.append("3")

    assert isinstance(coerced, CheckedList)
    assert coerced == [1, 2, 3]
    with pytest.raises(ValidationError):
        coerced.append(4.5)


def test_non_canonical_value_is_rejected():
    attr = String("type", canonical_values=["work", "home"])

    with pytest.raises(ValidationError, match="Attribute 'type' contains non-canonical value"):
        attr.coerce("other")


def test_non_canonical_item_is_rejected_after_coercion():
    coerced = String("type", canonical_values=["work", "home"], multi_valued=True).coerce(["work"])

    with pytest.raises(
        ValidationError, match="Attribute 'type' does not include canonical value 'other'"
    ):
        coerced.append("other")


@pytest.mark.parametrize(
    ("attr_direction", "direction", "expected"),
    (
        ("both", "in", "value"),
        ("both", "out", "value"),
        ("in", "in", "value"),
        ("in", "out", None),
        ("out", "in", None),
        ("in", "both", None),
    ),
)
def test_value_is_dropped_if_direction_does_not_match(attr_direction, direction, expected):
    assert String("attr", direction=attr_direction).coerce("value", direction) == expected


def test_direction_is_checked_before_required_value():
    assert String("id", required=True, direction="out").coerce(None, "in") is None


def test_custom_validator_failure_is_reported():
    def validate(value):
        if not value.startswith("+"):
            raise ValueError("missing country code")

    attr = String("phone", validators=[validate])

    assert attr.coerce("+48123") == "+48123"
    with pytest.raises(ValidationError) as exc_info:
        attr.coerce("123")
    assert str(exc_info.value) == "Attribute 'phone' value '123' is not valid: missing country code"


def test_attribute_is_converted_to_dict():
    attr = String(
        "userName",
        description="Unique identifier for the User.",
        required=True,
        uniqueness="server",
    )

    assert attr.to_dict() == {
        "name": "userName",
        "type": "string",
        "multiValued": False,
        "description": "Unique identifier for the User.",
        "required": True,
        "caseExact": False,
        "mutability": "readWrite",
        "returned": "default",
        "uniqueness": "server",
    }


def test_complex_attribute_is_converted_to_dict():
    attr = Complex(
        "manager",
        uniqueness=False,
        sub_attributes=[Reference("$ref", reference_types=["User"]), Boolean("primary")],
    )

    assert attr.to_dict() == {
        "name": "manager",
        "type": "complex",
        "multiValued": False,
        "description": "",
        "required": False,
        "subAttributes": [
            {
                "name": "$ref",
                "type": "reference",
                "referenceTypes": ["User"],
                "multiValued": False,
                "description": "",
                "required": False,
                "caseExact": False,
                "mutability": "readWrite",
                "returned": "default",
                "uniqueness": "none",
            },
            {
                "name": "primary",
                "type": "boolean",
                "multiValued": False,
                "description": "",
                "required": False,
                "mutability": "readWrite",
                "returned": "default",
            },
        ],
        "mutability": "readWrite",
        "returned": "default",
    }


@pytest.mark.parametrize(
    ("kwargs", "mutability", "returned"),
    (
        ({"mutability": False}, "readOnly", "default"),
        ({"direction": "in"}, "writeOnly", "default"),
        ({"mutability": "immutable", "returned": False}, "immutable", "never"),
        ({"returned": "always"}, "readWrite", "always"),
    ),
)
def test_characteristics_are_reported_as_keywords(kwargs, mutability, returned):
    output = String("attr", **kwargs).to_dict()

    assert output["mutability"] == mutability
    assert output["returned"] == returned


def test_attribute_can_be_recreated_from_dict():
    attr = Complex(
        "emails",
        multi_valued=True,
        sub_attributes=[
            String("value", required=True),
            String("type", canonical_values=["work", "home"]),
            Reference("$ref", reference_types=["uri"], mutability="immutable"),
        ],
    )

    recreated = Attribute.from_dict(attr.to_dict())

    assert isinstance(recreated, Complex)
    assert recreated.to_dict() == attr.to_dict()


@pytest.mark.parametrize(
    ("call", "expected"),
    (
        (
            lambda: String("user name"),
            "Invalid character ' ' in name of attribute definition 'user name'",
        ),
        (
            lambda: String("attr", mutability="sometimes"),
            "Attribute 'mutability' value 'sometimes' not recognised "
            "in attribute definition 'attr'",
        ),
        (
            lambda: String("attr", returned=1),
            "Attribute 'returned' value must be either string or boolean "
            "in attribute definition 'attr'",
        ),
        (
            lambda: String("attr", direction="sideways"),
            "Attribute 'direction' value 'sideways' not recognised in attribute definition 'attr'",
        ),
        (
            lambda: String("attr", canonical_values="work"),
            "Attribute 'canonicalValues' value must be either a collection or 'false' "
            "in attribute definition 'attr'",
        ),
        (
            lambda: Attribute.from_type("number", "attr"),
            "Type 'number' not recognised in attribute definition 'attr'",
        ),
        (
            lambda: Attribute.from_type("string", "attr", sub_attributes=[String("sub")]),
            "Attribute type must be 'complex' when subAttributes are specified "
            "in attribute definition 'attr'",
        ),
        (
            lambda: Attribute.from_type(None, "attr"),
            "Required parameter 'type' missing from Attribute instantiation",
        ),
        (
            lambda: Complex("attr", sub_attributes=[Complex("nested")]),
            "complex attributes can not contain complex sub-attributes",
        ),
    ),
)
def test_invalid_definition_is_rejected(call, expected):
    with pytest.raises(TypeError) as exc_info:
        call()

    assert str(exc_info.value) == expected


def test_attribute_of_any_type_can_be_created_from_type():
    attr = Attribute.from_type("dateTime", "created", mutability=False)

    assert isinstance(attr, DateTime)
    assert attr.mutability_keyword == AttributeMutability.READ_ONLY


def test_attribute_is_frozen():
    attr = String("userName")

    with pytest.raises(AttributeError):
        attr.name = "displayName"
    with pytest.raises(AttributeError):
        attr._required = True
    with pytest.raises(AttributeError):
        del attr.description
    assert attr.name == "userName"
    assert attr.required is False


def test_multi_valued_complex_attribute_has_default_sub_attributes():
    attr = Complex("emails", multi_valued=True)

    assert [sub_attr.name for sub_attr in attr.sub_attributes] == [
        "value",
        "display",
        "type",
        "primary",
        "$ref",
    ]


def test_only_complex_attribute_can_be_extended():
    with pytest.raises(
        TypeError,
        match="Attribute 'title' is not of type 'complex' and can not declare subAttributes",
    ):
        String("title").extend(String("value"))

    assert String("title").truncate("value").name == "title"
