from scimkit.schemas.group import GROUP_SCHEMA, GroupSchema
from scimkit.schemas.user import (
    ENTERPRISE_USER_SCHEMA,
    USER_SCHEMA,
    EnterpriseUserSchemaExtension,
    UserSchema,
)

__all__ = [
    "ENTERPRISE_USER_SCHEMA",
    "GROUP_SCHEMA",
    "USER_SCHEMA",
    "EnterpriseUserSchemaExtension",
    "GroupSchema",
    "UserSchema",
]
