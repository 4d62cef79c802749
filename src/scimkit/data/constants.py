from enum import Enum


class SCIMType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATETIME = "dateTime"
    REFERENCE = "reference"
    COMPLEX = "complex"
    BINARY = "binary"

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.value})"


class Direction(str, Enum):
    """
    Request direction the attribute participates in. Inbound data comes from the
    provisioning client, outbound data is returned by the service provider.
    """

    IN = "in"
    OUT = "out"
    BOTH = "both"

    def __str__(self) -> str:
        return self.value


PATCH_OP_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:PatchOp"
SCHEMA_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:Schema"
SCHEMA_URN_PREFIX = "urn:ietf:params:scim:schemas:"
