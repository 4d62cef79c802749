from scimkit.data.attrs import (
    Attribute,
    AttributeMutability,
    AttributeReturn,
    AttributeUniqueness,
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
from scimkit.data.complex import ComplexValue
from scimkit.data.constants import Direction, SCIMType
from scimkit.data.filter import Filter
from scimkit.data.identifiers import AttrName, SchemaUri
from scimkit.data.patch import PatchOp, PatchOperation, PatchOperationType
from scimkit.data.patch_path import PatchPath
from scimkit.data.schemas import SchemaDefinition, SchemaExtension, SchemaInstance
from scimkit.data.scim_data import ScimData

__all__ = [
    "AttrName",
    "SchemaUri",
    "Attribute",
    "AttributeMutability",
    "AttributeReturn",
    "AttributeUniqueness",
    "Binary",
    "Boolean",
    "Complex",
    "DateTime",
    "Decimal",
    "Integer",
    "Reference",
    "String",
    "CheckedList",
    "ComplexValue",
    "Direction",
    "SCIMType",
    "Filter",
    "PatchOp",
    "PatchOperation",
    "PatchOperationType",
    "PatchPath",
    "SchemaDefinition",
    "SchemaExtension",
    "SchemaInstance",
    "ScimData",
]
