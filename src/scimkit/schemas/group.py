from scimkit.data.attrs import AttributeMutability, Complex, Reference, String
from scimkit.data.schemas import SchemaDefinition

GROUP_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:Group"


class GroupSchema(SchemaDefinition):
    """
    Group resource schema, as specified in
    [RFC-7643, section 4.2](https://www.rfc-editor.org/rfc/rfc7643#section-4.2).
    """

    def __init__(self):
        super().__init__(
            "Group",
            GROUP_SCHEMA,
            "Group",
            [
                String(
                    "displayName",
                    description="A human-readable name for the Group.",
                    required=True,
                ),
                Complex(
                    "members",
                    multi_valued=True,
                    uniqueness=False,
                    description="A list of members of the Group.",
                    sub_attributes=[
                        String(
                            "value",
                            description="Identifier of the member of this Group.",
                            mutability=AttributeMutability.IMMUTABLE,
                        ),
                        Reference(
                            "$ref",
                            description=(
                                "The URI corresponding to a SCIM resource "
                                "that is a member of this Group."
                            ),
                            reference_types=["User", "Group"],
                            mutability=AttributeMutability.IMMUTABLE,
                        ),
                        String(
                            "type",
                            description=(
                                "A label indicating the type of resource, "
                                "e.g., 'User' or 'Group'."
                            ),
                            canonical_values=["User", "Group"],
                            mutability=AttributeMutability.IMMUTABLE,
                        ),
                    ],
                ),
            ],
        )
