import pytest

from scimkit.data.attrs import Complex, Integer, String
from scimkit.data.schemas import SchemaDefinition, SchemaInstance
from scimkit.error import ScimError, ValidationError
from scimkit.schemas import (
    ENTERPRISE_USER_SCHEMA,
    USER_SCHEMA,
    EnterpriseUserSchemaExtension,
    UserSchema,
)
from scimkit.warning import ScimkitUserWarning


@pytest.mark.parametrize(
    ("args", "expected"),
    (
        ((None, USER_SCHEMA), "Required parameter 'name' missing from"),
        (("User", None), "Required parameter 'id' missing from"),
        (("", USER_SCHEMA), "Expected 'name' to be a non-empty string in"),
        (("User", "urn:example:User"), "Invalid SCIM schema URN namespace 'urn:example:User' in"),
    ),
)
def test_invalid_schema_definition_is_rejected(args, expected):
    with pytest.raises(TypeError) as exc_info:
        SchemaDefinition(*args)

    assert str(exc_info.value) == f"{expected} SchemaDefinition instantiation"


def test_duplicated_attribute_is_rejected():
    with pytest.raises(
        TypeError,
        match="Schema definition 'urn:ietf:params:scim:schemas:test:Test' "
        "already declares attribute 'TITLE'",
    ):
        SchemaDefinition(
            "Test", "urn:ietf:params:scim:schemas:test:Test", "", [String("title"), String("TITLE")]
        )


def test_common_attributes_can_not_be_redeclared():
    with pytest.raises(TypeError, match="already declares attribute 'id'"):
        SchemaDefinition("Test", "urn:ietf:params:scim:schemas:test:Test", "", [String("id")])


def test_attributes_can_be_looked_up_by_path(user_schema):
    assert user_schema.attribute("userName").name == "userName"
    assert user_schema.attribute("NAME.givenName").name == "givenName"
    assert user_schema.attribute("meta.lastModified").name == "lastModified"
    assert user_schema.attribute(f"{USER_SCHEMA}:emails.value").name == "value"


def test_extension_attributes_can_be_looked_up(enterprise_user_schema):
    assert enterprise_user_schema.attribute(f"{ENTERPRISE_USER_SCHEMA}:manager.value").name == (
        "value"
    )
    assert isinstance(
        enterprise_user_schema.attribute(ENTERPRISE_USER_SCHEMA), EnterpriseUserSchemaExtension
    )


@pytest.mark.parametrize(
    ("path", "expected"),
    (
        ("unknown", f"Schema definition '{USER_SCHEMA}' does not declare attribute 'unknown'"),
        (
            "userName.value",
            f"Attribute 'userName' of schema '{USER_SCHEMA}' is not of type 'complex' "
            "and does not define any subAttributes",
        ),
        (
            "name.nickName",
            f"Attribute 'name' of schema '{USER_SCHEMA}' does not declare subAttribute 'nickName'",
        ),
        (
            "urn:ietf:params:scim:schemas:extension:unknown:2.0:User:attr",
            f"Schema definition '{USER_SCHEMA}' does not declare attribute "
            "'urn:ietf:params:scim:schemas:extension:unknown:2.0:User:attr'",
        ),
    ),
)
def test_undeclared_attribute_lookup_fails(user_schema, path, expected):
    with pytest.raises(TypeError) as exc_info:
        user_schema.attribute(path)

    assert str(exc_info.value) == expected


def test_schema_definition_document(user_schema):
    document = user_schema.definition("/scim/v2")

    assert document["schemas"] == ["urn:ietf:params:scim:schemas:core:2.0:Schema"]
    assert document["id"] == USER_SCHEMA
    assert document["name"] == "User"
    assert document["description"] == "User Account"
    assert document["meta"] == {
        "resourceType": "Schema",
        "location": f"/scim/v2/{USER_SCHEMA}",
    }
    assert [attr["name"] for attr in document["attributes"]][:3] == [
        "userName",
        "name",
        "displayName",
    ]
    assert "id" not in [attr["name"] for attr in document["attributes"]]


def test_data_is_coerced_to_schema_instance(user_schema):
    instance = user_schema.coerce({"USERNAME": "bjensen", "name": {"givenName": "Barbara"}})

    assert isinstance(instance, SchemaInstance)
    assert instance.definition is user_schema
    assert instance.to_dict() == {
        "schemas": [USER_SCHEMA],
        "meta": {"resourceType": "User"},
        "userName": "bjensen",
        "name": {"givenName": "Barbara"},
    }


def test_location_is_synthesised_from_basepath(user_schema):
    instance = user_schema.coerce({"id": "2819c223", "userName": "bjensen"}, "out", "/Users")

    assert instance["meta"]["location"] == "/Users/2819c223"
    assert instance["id"] == "2819c223"


@pytest.mark.parametrize(
    ("direction", "present", "absent"),
    (
        ("in", {"password", "externalId"}, {"id", "groups"}),
        ("out", {"id", "groups"}, {"password", "externalId"}),
        ("both", set(), {"id", "groups", "password", "externalId"}),
    ),
)
def test_attributes_are_coerced_for_direction(user_schema, direction, present, absent):
    instance = user_schema.coerce(
        {
            "id": "2819c223",
            "externalId": "bjensen",
            "userName": "bjensen",
            "password": "t1meMa$heen",
            "groups": [{"value": "e9e30dba", "display": "Tour Guides"}],
        },
        direction,
    )

    assert present <= set(instance)
    assert not absent & set(instance)


def test_missing_required_attribute_is_reported(user_schema):
    with pytest.raises(ScimError) as exc_info:
        user_schema.coerce({"displayName": "Babs"})

    assert exc_info.value.status == 400
    assert exc_info.value.scim_type == "invalidValue"
    assert exc_info.value.detail == "Required attribute 'userName' is missing"


def test_data_must_be_mapping(user_schema):
    with pytest.raises(
        TypeError, match="Expected 'data' to be a single complex value in SchemaDefinition coercion"
    ):
        user_schema.coerce(["bjensen"])


def test_incompatible_schemas_are_rejected(user_schema):
    with pytest.raises(ScimError) as exc_info:
        user_schema.coerce(
            {
                "schemas": ["urn:ietf:params:scim:schemas:core:2.0:Group"],
                "userName": "bjensen",
            }
        )

    assert exc_info.value.scim_type == "invalidSyntax"


def test_extension_data_is_nested_under_extension_urn(enterprise_user_schema):
    instance = enterprise_user_schema.coerce(
        {
            "userName": "bjensen",
            f"{ENTERPRISE_USER_SCHEMA}:employeeNumber": "701984",
            f"{ENTERPRISE_USER_SCHEMA}:manager.value": "26118915-6090-4610-87e4-49d8ca9f808d",
            ENTERPRISE_USER_SCHEMA: {"costCenter": "4130"},
        }
    )

    assert instance["schemas"] == [USER_SCHEMA, ENTERPRISE_USER_SCHEMA]
    assert instance[ENTERPRISE_USER_SCHEMA].to_dict() == {
        "employeeNumber": "701984",
        "costCenter": "4130",
        "manager": {"value": "26118915-6090-4610-87e4-49d8ca9f808d"},
    }
    assert instance[f"{ENTERPRISE_USER_SCHEMA.lower()}"]["employeeNumber"] == "701984"


def test_extension_errors_are_reported_with_extension_urn(enterprise_user_schema):
    with pytest.raises(ScimError) as exc_info:
        enterprise_user_schema.coerce(
            {"userName": "bjensen", ENTERPRISE_USER_SCHEMA: {"manager": "bob"}}
        )

    assert exc_info.value.detail == (
        "Complex attribute 'manager' expected complex value but received 'bob' "
        f"in schema extension '{ENTERPRISE_USER_SCHEMA}'"
    )


def test_required_extension_must_be_provided_until_truncated():
    definition = UserSchema().extend(EnterpriseUserSchemaExtension(), required=True)

    with pytest.raises(ScimError) as exc_info:
        definition.coerce({"userName": "bjensen"})
    assert exc_info.value.detail == (
        f"Missing values for required schema extension '{ENTERPRISE_USER_SCHEMA}'"
    )

    definition.truncate(ENTERPRISE_USER_SCHEMA)

    assert definition.coerce({"userName": "bjensen"})["userName"] == "bjensen"
    assert definition.get_extension(ENTERPRISE_USER_SCHEMA) is None


def test_required_extension_must_be_declared_in_schemas():
    definition = UserSchema().extend(EnterpriseUserSchemaExtension(), required=True)

    with pytest.raises(ScimError) as exc_info:
        definition.coerce(
            {
                "schemas": [USER_SCHEMA],
                "userName": "bjensen",
                ENTERPRISE_USER_SCHEMA: {"employeeNumber": "701984"},
            }
        )

    assert exc_info.value.scim_type == "invalidValue"


def test_extending_with_already_declared_attribute_warns():
    extension = SchemaDefinition(
        "Extension",
        "urn:ietf:params:scim:schemas:extension:test:2.0:User",
        "",
        [String("userName")],
    )

    with pytest.warns(ScimkitUserWarning, match="'userName' attribute"):
        UserSchema().extend(extension)


def test_same_extension_is_registered_once():
    extension = EnterpriseUserSchemaExtension()
    definition = UserSchema().extend(extension).extend([extension])

    assert len(definition.extensions) == 1
    with pytest.raises(TypeError, match="already declares extension"):
        definition.extend(EnterpriseUserSchemaExtension())


def test_nested_extensions_are_registered_directly():
    nested = SchemaDefinition(
        "Nested", "urn:ietf:params:scim:schemas:extension:nested:2.0:User", "", [Integer("level")]
    )
    extension = EnterpriseUserSchemaExtension().extend(nested, required=True)

    definition = UserSchema().extend(extension)

    assert [(str(item.definition.id), item.required) for item in definition.extensions] == [
        (ENTERPRISE_USER_SCHEMA, False),
        ("urn:ietf:params:scim:schemas:extension:nested:2.0:User", True),
    ]


def test_attributes_can_be_truncated():
    definition = UserSchema()

    definition.truncate(["nickName", "name.middleName", "unknown.attr"])

    with pytest.raises(TypeError):
        definition.attribute("nickName")
    with pytest.raises(TypeError):
        definition.attribute("name.middleName")
    assert definition.attribute("name.givenName").name == "givenName"


def test_truncated_sub_attribute_is_not_accepted():
    definition = UserSchema().truncate("name.middleName")

    with pytest.raises(ScimError, match="does not declare subAttribute 'middleName'"):
        definition.coerce({"userName": "bjensen", "name": {"middleName": "Jane"}})


def test_definition_can_be_extended_with_attributes():
    definition = UserSchema().extend(Complex("pet", sub_attributes=[String("name")]))

    instance = definition.coerce({"userName": "bjensen", "pet": {"name": "Rex"}})

    assert instance["pet"]["name"] == "Rex"


@pytest.mark.parametrize(
    ("filters", "present", "absent"),
    (
        ("userName pr", {"id", "userName"}, {"displayName", "emails", "name"}),
        ("name.givenName pr", {"id", "name"}, {"userName", "displayName"}),
        ("displayName np", {"id", "userName", "emails", "name"}, {"displayName"}),
        ("id np", {"id", "userName"}, set()),
    ),
)
def test_returned_attributes_are_selected_by_filter(
    user_schema, user_data, filters, present, absent
):
    instance = user_schema.coerce(user_data, "out", filters=filters)

    assert present <= set(instance)
    assert not absent & set(instance)


def test_sub_attributes_are_selected_by_filter(user_schema, user_data):
    instance = user_schema.coerce(user_data, "out", filters="name.givenName pr and emails.type pr")

    assert instance["name"].to_dict() == {"givenName": "Barbara"}
    assert [email.to_dict() for email in instance["emails"]] == [{"type": "work"}, {"type": "home"}]


def test_password_is_never_returned(user_schema):
    instance = user_schema.coerce(
        {"userName": "bjensen", "password": "t1meMa$heen"}, "in", filters="password pr"
    )

    assert "password" not in instance


def test_instance_assignment_is_coerced(user):
    user["displayName"] = "Barbara"
    user["EMAILS"] = [{"value": "babs@example.com"}]

    assert user["displayName"] == "Barbara"
    assert user["emails"][0]["value"] == "babs@example.com"


def test_instance_rejects_undeclared_attribute(user):
    with pytest.raises(
        ValidationError,
        match=f"Schema definition '{USER_SCHEMA}' does not declare attribute 'favouriteColour'",
    ):
        user["favouriteColour"] = "blue"


def test_instance_rejects_invalid_value(user):
    with pytest.raises(ScimError) as exc_info:
        user["userName"] = None

    assert exc_info.value.scim_type == "invalidValue"
    assert user["userName"] == "bjensen@example.com"


def test_instance_rejects_change_of_read_only_attribute(user):
    with pytest.raises(ScimError) as exc_info:
        user["id"] = "902c246b"

    assert exc_info.value.scim_type == "mutability"
    assert exc_info.value.detail == "Attribute 'id' already defined and is not mutable"


def test_instance_routes_namespaced_keys_to_extension(enterprise_user_schema):
    instance = enterprise_user_schema.coerce({"userName": "bjensen"})

    instance[f"{ENTERPRISE_USER_SCHEMA}:employeeNumber"] = "701984"

    assert instance[ENTERPRISE_USER_SCHEMA]["employeeNumber"] == "701984"
    assert instance[ENTERPRISE_USER_SCHEMA].is_extension


def test_extension_data_is_attached_on_demand(enterprise_user_schema):
    instance = enterprise_user_schema.coerce({"userName": "bjensen"})

    nested = instance.extension_data(ENTERPRISE_USER_SCHEMA)
    nested["department"] = "Tour Operations"

    assert instance.to_dict()[ENTERPRISE_USER_SCHEMA] == {"department": "Tour Operations"}
    assert instance.extension_data(ENTERPRISE_USER_SCHEMA) is nested


def test_empty_extension_data_is_not_reported(enterprise_user_schema):
    instance = enterprise_user_schema.coerce({"userName": "bjensen"})

    instance.extension_data(ENTERPRISE_USER_SCHEMA)

    assert ENTERPRISE_USER_SCHEMA not in instance
    assert ENTERPRISE_USER_SCHEMA not in instance.to_dict()


def test_undeclared_extension_data_can_not_be_accessed(user):
    with pytest.raises(ValidationError):
        user.extension_data(ENTERPRISE_USER_SCHEMA)


@pytest.mark.parametrize("schema", ("not a urn", 42, ""))
def test_schemas_entry_that_is_not_urn_is_incompatible(user_schema, schema):
    with pytest.raises(ScimError) as exc_info:
        user_schema.coerce({"schemas": [schema], "userName": "bjensen"})

    assert exc_info.value.status == 400
    assert exc_info.value.scim_type == "invalidSyntax"
    assert exc_info.value.detail == (
        "The request body supplied a schema type that is incompatible with this resource"
    )


def test_schemas_are_compared_case_insensitively(enterprise_user_schema):
    instance = enterprise_user_schema.coerce(
        {
            "schemas": [USER_SCHEMA.upper(), ENTERPRISE_USER_SCHEMA.upper()],
            "userName": "bjensen",
            ENTERPRISE_USER_SCHEMA: {"employeeNumber": "701984"},
        }
    )

    assert instance["schemas"] == [USER_SCHEMA, ENTERPRISE_USER_SCHEMA]


@pytest.mark.parametrize(
    ("data", "expected"),
    (
        (
            {"schemas": [USER_SCHEMA, ENTERPRISE_USER_SCHEMA], "userName": "bjensen"},
            [USER_SCHEMA],
        ),
        (
            {
                "schemas": [USER_SCHEMA, ENTERPRISE_USER_SCHEMA],
                "userName": "bjensen",
                ENTERPRISE_USER_SCHEMA: {"employeeNumber": None},
            },
            [USER_SCHEMA],
        ),
        (
            {
                "schemas": [USER_SCHEMA],
                "userName": "bjensen",
                f"{ENTERPRISE_USER_SCHEMA}:employeeNumber": "701984",
            },
            [USER_SCHEMA, ENTERPRISE_USER_SCHEMA],
        ),
    ),
)
def test_schemas_list_extensions_present_in_data(enterprise_user_schema, data, expected):
    assert enterprise_user_schema.coerce(data)["schemas"] == expected


def test_coercing_outbound_resource_inbound_keeps_bidirectional_attributes(
    enterprise_user_schema, user_data
):
    user_data[ENTERPRISE_USER_SCHEMA] = {
        "employeeNumber": "701984",
        "manager": {"value": "26118915", "$ref": "../Users/26118915"},
    }
    outbound = enterprise_user_schema.coerce(user_data, "out")

    inbound = enterprise_user_schema.coerce(outbound, "in")

    expected = outbound.to_dict()
    expected.pop("id")
    expected["meta"] = {"resourceType": "User"}
    assert inbound.to_dict() == expected
    assert inbound["schemas"] == [USER_SCHEMA, ENTERPRISE_USER_SCHEMA]
    assert inbound[ENTERPRISE_USER_SCHEMA]["manager"]["value"] == "26118915"
