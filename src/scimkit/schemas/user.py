import re
import warnings
import zoneinfo

import iso3166
import phonenumbers
import precis_i18n

from scimkit.data.attrs import (
    Attribute,
    AttributeMutability,
    AttributeUniqueness,
    Binary,
    Boolean,
    Complex,
    Reference,
    String,
)
from scimkit.data.constants import Direction
from scimkit.data.schemas import SchemaDefinition
from scimkit.warning import ScimkitUserWarning

USER_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:User"
ENTERPRISE_USER_SCHEMA = "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User"


def _validate_timezone(value: str) -> None:
    try:
        zoneinfo.ZoneInfo(value)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        raise ValueError("not a known IANA time zone")


_EMAIL_REGEX = re.compile(
    r"(?:[a-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-z0-9!#$%&'*+/=?^_`{|}~-]+)*|\""
    r"(?:[\x01-\x08\x0b\x0c\x0e-\x1f\x21\x23-\x5b\x5d-\x7f]|\\[\x01-\x09\x0b\x0c\x0e-\x7f])*\")"
    r"@(?:(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9](?:[a-z0-9-]*[a-z0-9])?"
    r"|\[(?:[0-9]{1,3}\.){3}[0-9]{1,3}\])",
    re.IGNORECASE,
)


def _validate_email(value: str) -> None:
    if _EMAIL_REGEX.fullmatch(value) is None:
        raise ValueError("not a valid e-mail address")


def _validate_phone_number(value: str) -> None:
    try:
        phonenumbers.parse(value, _check_region=False)
    except phonenumbers.NumberParseException:
        warnings.warn(
            message=(
                f"Value {value!r} of attribute 'phoneNumbers.value' "
                "is not a valid phone number"
            ),
            category=ScimkitUserWarning,
        )


def _validate_country(value: str) -> None:
    if iso3166.countries_by_alpha2.get(value.upper()) is None:
        raise ValueError("not an ISO 3166-1 alpha-2 country code")


def _primary(description: str) -> Boolean:
    return Boolean(
        "primary",
        description=(
            "A Boolean value indicating the 'primary' or preferred attribute value for this "
            f"attribute, e.g., {description}. The primary attribute value 'true' MUST appear "
            "no more than once."
        ),
    )


def _display() -> String:
    return String(
        "display",
        description="A human-readable name, primarily used for display purposes. READ-ONLY.",
    )


def _user_attributes() -> list[Attribute]:
    return [
        String(
            "userName",
            description=(
                "Unique identifier for the User, typically used by the user to directly "
                "authenticate to the service provider. Each User MUST include a non-empty "
                "userName value. REQUIRED."
            ),
            precis=precis_i18n.get_profile("UsernameCaseMapped"),
            required=True,
            uniqueness=AttributeUniqueness.SERVER,
        ),
        Complex(
            "name",
            description="The components of the user's real name.",
            sub_attributes=[
                String(
                    "formatted",
                    description=(
                        "The full name, including all middle names, titles, and suffixes "
                        "as appropriate, formatted for display."
                    ),
                ),
                String("familyName", description="The family name of the User."),
                String("givenName", description="The given name of the User."),
                String("middleName", description="The middle name(s) of the User."),
                String("honorificPrefix", description="The honorific prefix(es) of the User."),
                String("honorificSuffix", description="The honorific suffix(es) of the User."),
            ],
        ),
        String(
            "displayName",
            description="The name of the User, suitable for display to end-users.",
        ),
        String("nickName", description="The casual way to address the user in real life."),
        Reference(
            "profileUrl",
            reference_types=["external"],
            description=(
                "A fully qualified URL pointing to a page "
                "representing the User's online profile."
            ),
        ),
        String("title", description="The user's title, such as 'Vice President'."),
        String(
            "userType",
            description="Used to identify the relationship between the organization and the user.",
        ),
        String(
            "preferredLanguage",
            description="Indicates the User's preferred written or spoken language.",
        ),
        String(
            "locale",
            description=(
                "Used to indicate the User's default location "
                "for purposes of localizing items."
            ),
        ),
        String(
            "timezone",
            description=(
                "The User's time zone in the 'Olson' time zone database format, "
                "e.g., 'America/Los_Angeles'."
            ),
            validators=[_validate_timezone],
        ),
        Boolean(
            "active",
            description="A Boolean value indicating the User's administrative status.",
        ),
        String(
            "password",
            direction=Direction.IN,
            returned=False,
            description="The User's cleartext password.",
        ),
        Complex(
            "emails",
            multi_valued=True,
            description="Email addresses for the user.",
            sub_attributes=[
                String(
                    "value",
                    description="Email addresses for the user.",
                    validators=[_validate_email],
                ),
                _display(),
                String(
                    "type",
                    canonical_values=["work", "home", "other"],
                    description=(
                        "A label indicating the attribute's "
                        "function, e.g., 'work' or 'home'."
                    ),
                ),
                _primary("the preferred mailing address or primary email address"),
            ],
        ),
        Complex(
            "phoneNumbers",
            multi_valued=True,
            uniqueness=False,
            description="Phone numbers for the User.",
            sub_attributes=[
                String(
                    "value",
                    description="Phone number of the User.",
                    validators=[_validate_phone_number],
                ),
                _display(),
                String(
                    "type",
                    canonical_values=["work", "home", "mobile", "fax", "pager", "other"],
                    description=(
                        "A label indicating the attribute's function, "
                        "e.g., 'work', 'home', 'mobile'."
                    ),
                ),
                _primary("the preferred phone number or primary phone number"),
            ],
        ),
        Complex(
            "ims",
            multi_valued=True,
            uniqueness=False,
            description="Instant messaging addresses for the User.",
            sub_attributes=[
                String("value", description="Instant messaging address for the User."),
                _display(),
                String(
                    "type",
                    canonical_values=["aim", "gtalk", "icq", "xmpp", "msn", "skype", "qq", "yahoo"],
                    description=(
                        "A label indicating the attribute's function, "
                        "e.g., 'aim', 'gtalk', 'xmpp'."
                    ),
                ),
                _primary("the preferred messenger or primary messenger"),
            ],
        ),
        Complex(
            "photos",
            multi_valued=True,
            uniqueness=False,
            description="URLs of photos of the User.",
            sub_attributes=[
                Reference(
                    "value",
                    reference_types=["external"],
                    description="URL of a photo of the User.",
                ),
                _display(),
                String(
                    "type",
                    canonical_values=["photo", "thumbnail"],
                    description=(
                        "A label indicating the attribute's function, "
                        "i.e., 'photo' or 'thumbnail'."
                    ),
                ),
                _primary("the preferred photo or thumbnail"),
            ],
        ),
        Complex(
            "addresses",
            multi_valued=True,
            description="A physical mailing address for this User.",
            sub_attributes=[
                String(
                    "formatted",
                    description=(
                        "The full mailing address, formatted for "
                        "display or use with a mailing label."
                    ),
                ),
                String("streetAddress", description="The full street address component."),
                String("locality", description="The city or locality component."),
                String("region", description="The state or region component."),
                String("postalCode", description="The zip code or postal code component."),
                String(
                    "country",
                    description="The country name component, as ISO 3166-1 alpha-2 code.",
                    validators=[_validate_country],
                ),
                String(
                    "type",
                    canonical_values=["work", "home", "other"],
                    description=(
                        "A label indicating the attribute's "
                        "function, e.g., 'work' or 'home'."
                    ),
                ),
                _primary("the preferred mailing address"),
            ],
        ),
        Complex(
            "groups",
            direction=Direction.OUT,
            mutability=False,
            multi_valued=True,
            uniqueness=False,
            description="A list of groups to which the user belongs.",
            sub_attributes=[
                String(
                    "value",
                    direction=Direction.OUT,
                    mutability=False,
                    description="The identifier of the User's group.",
                ),
                Reference(
                    "$ref",
                    direction=Direction.OUT,
                    mutability=False,
                    reference_types=["User", "Group"],
                    description="The URI of the corresponding 'Group' resource.",
                ),
                String(
                    "display",
                    direction=Direction.OUT,
                    mutability=False,
                    description=(
                        "A human-readable name, primarily used "
                        "for display purposes. READ-ONLY."
                    ),
                ),
                String(
                    "type",
                    direction=Direction.OUT,
                    mutability=False,
                    canonical_values=["direct", "indirect"],
                    description=(
                        "A label indicating the attribute's function, "
                        "e.g., 'direct' or 'indirect'."
                    ),
                ),
            ],
        ),
        Complex(
            "entitlements",
            multi_valued=True,
            uniqueness=False,
            description="A list of entitlements for the User that represent a thing the User has.",
            sub_attributes=[
                String("value", description="The value of an entitlement."),
                _display(),
                String("type", description="A label indicating the attribute's function."),
                _primary("the preferred entitlement"),
            ],
        ),
        Complex(
            "roles",
            multi_valued=True,
            uniqueness=False,
            description="A list of roles for the User that collectively represent who the User is.",
            sub_attributes=[
                String("value", description="The value of a role."),
                _display(),
                String("type", description="A label indicating the attribute's function."),
                _primary("the preferred role"),
            ],
        ),
        Complex(
            "x509Certificates",
            multi_valued=True,
            uniqueness=False,
            description="A list of certificates issued to the User.",
            sub_attributes=[
                Binary("value", case_exact=True, description="The value of an X.509 certificate."),
                _display(),
                String("type", description="A label indicating the attribute's function."),
                _primary("the preferred certificate"),
            ],
        ),
    ]


class UserSchema(SchemaDefinition):
    """
    User resource schema, as specified in
    [RFC-7643, section 4.1](https://www.rfc-editor.org/rfc/rfc7643#section-4.1).
    """

    def __init__(self):
        super().__init__("User", USER_SCHEMA, "User Account", _user_attributes())


class EnterpriseUserSchemaExtension(SchemaDefinition):
    """
    Enterprise User schema extension, as specified in
    [RFC-7643, section 4.3](https://www.rfc-editor.org/rfc/rfc7643#section-4.3).
    """

    def __init__(self):
        super().__init__(
            "EnterpriseUser",
            ENTERPRISE_USER_SCHEMA,
            "Enterprise User",
            [
                String(
                    "employeeNumber",
                    description="Numeric or alphanumeric identifier assigned to a person.",
                ),
                String("costCenter", description="Identifies the name of a cost center."),
                String("organization", description="Identifies the name of an organization."),
                String("division", description="Identifies the name of a division."),
                String("department", description="Identifies the name of a department."),
                Complex(
                    "manager",
                    uniqueness=False,
                    description="The User's manager.",
                    sub_attributes=[
                        String(
                            "value",
                            required=True,
                            description=(
                                "The id of the SCIM resource representing "
                                "the User's manager."
                            ),
                        ),
                        Reference(
                            "$ref",
                            reference_types=["User"],
                            description=(
                                "The URI of the SCIM resource representing "
                                "the User's manager."
                            ),
                        ),
                        String(
                            "displayName",
                            mutability=AttributeMutability.READ_ONLY,
                            description="The displayName of the User's manager.",
                        ),
                    ],
                ),
            ],
        )
