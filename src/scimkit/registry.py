from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Awaitable, Callable, Optional, Union

from scimkit.data.identifiers import SchemaUri
from scimkit.data.schemas import SchemaDefinition

RESOURCE_TYPE_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:ResourceType"

Handler = Callable[..., Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class ResourceType:
    """
    Registration record of the resource type, holding its schema, schema extensions, and
    the handlers that read (`egress`), write (`ingress`), and delete (`degress`) resources
    of the type.

    The schema definition passed as `schema` is not modified; `definition` returns a copy
    with `extensions` applied.
    """

    name: str
    endpoint: str
    schema: SchemaDefinition
    description: str = ""
    extensions: list[tuple[SchemaDefinition, bool]] = field(default_factory=list)
    ingress: Optional[Handler] = None
    egress: Optional[Handler] = None
    degress: Optional[Handler] = None

    @cached_property
    def definition(self) -> SchemaDefinition:
        """
        Schema definition of the resource type, extended with registered extensions.
        """
        definition = SchemaDefinition(
            self.schema.name,
            self.schema.id,
            self.schema.description,
            self.schema.attributes,
        )
        for extension in self.schema.extensions:
            definition.extend(extension.definition, required=extension.required)
        for extension, required in self.extensions:
            definition.extend(extension, required=required)
        return definition

    def to_dict(self, basepath: Optional[str] = None) -> dict[str, Any]:
        """
        Returns the ResourceType resource, as specified in RFC-7643, section 6.
        """
        output: dict[str, Any] = {
            "schemas": [RESOURCE_TYPE_SCHEMA],
            "id": self.name,
            "name": self.name,
            "endpoint": self.endpoint,
            "description": self.description,
            "schema": str(self.schema.id),
        }
        extensions = [
            {"schema": str(item.definition.id), "required": item.required}
            for item in self.definition.extensions
        ]
        if extensions:
            output["schemaExtensions"] = extensions
        output["meta"] = {
            "resourceType": "ResourceType",
            "location": f"{basepath or ''}/ResourceTypes/{self.name}",
        }
        return output


resource_types: dict[str, ResourceType] = {}
schemas: dict[SchemaUri, SchemaDefinition] = {}


def register_schema(definition: SchemaDefinition) -> None:
    existing = schemas.get(definition.id)
    if existing is not None and existing is not definition:
        raise RuntimeError(
            f"different definition for schema {str(definition.id)!r} already registered"
        )
    schemas[definition.id] = definition


def register_resource_type(resource_type: ResourceType) -> None:
    existing = resource_types.get(resource_type.name)
    if existing is not None and existing.endpoint != resource_type.endpoint:
        raise RuntimeError(
            f"resource type {resource_type.name!r} already defined "
            f"for different endpoint {existing.endpoint!r}"
        )
    register_schema(resource_type.schema)
    for extension, _ in resource_type.extensions:
        register_schema(extension)
    resource_types[resource_type.name] = resource_type
