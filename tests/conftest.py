import pytest

from scimkit import config
from scimkit.data.attrs import (
    Binary,
    Boolean,
    Complex,
    DateTime,
    Decimal,
    Integer,
    Reference,
    String,
)
from scimkit.data.schemas import SchemaDefinition
from scimkit.schemas import EnterpriseUserSchemaExtension, GroupSchema, UserSchema

FAKE_SCHEMA = "urn:ietf:params:scim:schemas:test:2.0:Fake"


class FakeSchema(SchemaDefinition):
    def __init__(self):
        super().__init__(
            "Fake",
            FAKE_SCHEMA,
            "Schema for tests",
            [
                Integer("int"),
                String("str"),
                String("str_cs", case_exact=True),
                String("str_mv", multi_valued=True),
                Boolean("bool"),
                DateTime("datetime"),
                Decimal("decimal"),
                Binary("binary"),
                Reference("external_ref", reference_types=["external"]),
                Reference("uri_ref", reference_types=["uri"]),
                Reference("scim_ref", reference_types=["Fake"]),
                Complex("c", sub_attributes=[String("value")]),
                Complex(
                    "c2_mv",
                    multi_valued=True,
                    sub_attributes=[
                        String("str"),
                        Integer("int"),
                        Boolean("bool", required=True),
                    ],
                ),
            ],
        )


_user_schema = UserSchema()
_group_schema = GroupSchema()
_enterprise_extension = EnterpriseUserSchemaExtension()
_fake_schema = FakeSchema()


@pytest.fixture(scope="session")
def user_schema() -> UserSchema:
    return _user_schema


@pytest.fixture(scope="session")
def group_schema() -> GroupSchema:
    return _group_schema


@pytest.fixture(scope="session")
def enterprise_extension() -> EnterpriseUserSchemaExtension:
    return _enterprise_extension


@pytest.fixture(scope="session")
def fake_schema() -> FakeSchema:
    return _fake_schema


@pytest.fixture
def enterprise_user_schema() -> UserSchema:
    return UserSchema().extend(EnterpriseUserSchemaExtension())


@pytest.fixture(autouse=True)
def service_provider_config():
    original = config.service_provider_config
    config.set_service_provider_config(
        config.ServiceProviderConfig.create(
            patch={"supported": True},
            filter_={"max_results": 100, "supported": True},
        )
    )
    yield config.service_provider_config
    config.set_service_provider_config(original)


@pytest.fixture
def user_data():
    return {
        "schemas": ["urn:ietf:params:scim:schemas:core:2.0:User"],
        "id": "2819c223-7f76-453a-919d-413861904646",
        "externalId": "bjensen",
        "userName": "bjensen@example.com",
        "name": {
            "formatted": "Ms. Barbara J Jensen, III",
            "familyName": "Jensen",
            "givenName": "Barbara",
            "middleName": "Jane",
            "honorificPrefix": "Ms.",
            "honorificSuffix": "III",
        },
        "displayName": "Babs Jensen",
        "nickName": "Babs",
        "profileUrl": "https://login.example.com/bjensen",
        "emails": [
            {"value": "bjensen@example.com", "type": "work", "primary": True},
            {"value": "babs@jensen.org", "type": "home"},
        ],
        "addresses": [
            {
                "streetAddress": "100 Universal City Plaza",
                "locality": "Hollywood",
                "region": "CA",
                "postalCode": "91608",
                "country": "US",
                "type": "work",
            },
        ],
        "phoneNumbers": [
            {"value": "+1-201-555-0123", "type": "work"},
            {"value": "+1-201-555-0124", "type": "mobile"},
        ],
        "userType": "Employee",
        "title": "Tour Guide",
        "preferredLanguage": "en-US",
        "locale": "en-US",
        "active": True,
        "meta": {
            "resourceType": "User",
            "created": "2010-01-23T04:56:22Z",
            "lastModified": "2011-05-13T04:42:34Z",
            "version": 'W/"3694e05e9dff591"',
        },
    }


@pytest.fixture
def user(user_schema, user_data):
    return user_schema.coerce(user_data, "out")
