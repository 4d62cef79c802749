import warnings
from collections.abc import Mapping, MutableSequence
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional, Union

from typing_extensions import Self

from scimkit.data.attrs import (
    Attribute,
    AttributeReturn,
    AttributeUniqueness,
    Complex,
    DateTime,
    Reference,
    String,
)
from scimkit.data.constants import SCHEMA_SCHEMA, SCHEMA_URN_PREFIX, Direction
from scimkit.data.filter import Filter
from scimkit.data.identifiers import SchemaUri, split_namespace, split_path
from scimkit.data.scim_data import ScimData
from scimkit.error import ScimError, ScimErrorType, ValidationError
from scimkit.warning import ScimkitUserWarning


def _common_attributes() -> list[Attribute]:
    return [
        Reference("schemas", multi_valued=True, reference_types=["uri"]),
        String(
            "id",
            direction=Direction.OUT,
            returned=AttributeReturn.ALWAYS,
            required=True,
            mutability=False,
            case_exact=True,
            uniqueness=AttributeUniqueness.GLOBAL,
        ),
        String("externalId", direction=Direction.IN, case_exact=True),
        Complex(
            "meta",
            required=True,
            mutability=False,
            sub_attributes=[
                String("resourceType", required=True, mutability=False, case_exact=True),
                DateTime("created", direction=Direction.OUT, mutability=False),
                DateTime("lastModified", direction=Direction.OUT, mutability=False),
                String("location", direction=Direction.OUT, mutability=False),
                String("version", direction=Direction.OUT, mutability=False),
            ],
        ),
    ]


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (tuple, MutableSequence))


def _merge(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        target_key = next((k for k in target if k.lower() == key.lower()), key)
        existing = target.get(target_key)
        if _is_sequence(existing) and _is_sequence(value):
            target[target_key] = [*existing, *value]
        elif isinstance(value, Mapping):
            target[target_key] = _merge(
                dict(existing) if isinstance(existing, Mapping) else {}, value
            )
        else:
            target[target_key] = value
    return target


def _check_mutability(attr: Attribute, existing: Any, value: Any) -> None:
    if not attr.is_mutable and existing is not None and existing != value:
        raise ScimError(
            400,
            ScimErrorType.MUTABILITY,
            f"Attribute '{attr.name}' already defined and is not mutable",
        )


@dataclass(frozen=True)
class SchemaExtension:
    """
    Schema definition registered as an extension of another schema definition.
    """

    definition: "SchemaDefinition"
    required: bool = False


class SchemaDefinition:
    """
    Composes attributes and extensions into a named schema, identified by URN.

    Every definition implicitly declares the common attributes (`schemas`, `id`, `externalId`,
    and `meta`), as specified in RFC-7643, section 3.1. They are not reported as
    definition's `attributes`, but they are coerced and can be looked up.

    Args:
        name: Name of the schema, used as `meta.resourceType` of coerced data.
        id_: URN of the schema. Must start with `urn:ietf:params:scim:schemas:`.
        description: Description of the schema.
        attributes: Attributes declared by the schema.

    Raises:
        TypeError: If name or id are not valid, or attribute names are duplicated.
    """

    def __init__(
        self,
        name: str,
        id_: str,
        description: str = "",
        attributes: Iterable[Attribute] = (),
    ):
        for param, value in (("name", name), ("id", id_)):
            if value is None:
                raise TypeError(
                    f"Required parameter '{param}' missing from SchemaDefinition instantiation"
                )
            if not isinstance(value, str) or not value:
                raise TypeError(
                    f"Expected '{param}' to be a non-empty string in SchemaDefinition instantiation"
                )
        if not isinstance(description, str):
            raise TypeError(
                "Expected 'description' to be a string in SchemaDefinition instantiation"
            )
        if not id_.startswith(SCHEMA_URN_PREFIX):
            raise TypeError(
                f"Invalid SCIM schema URN namespace '{id_}' in SchemaDefinition instantiation"
            )

        self._name = name
        self._id = SchemaUri(id_)
        self._description = description
        self._common_attributes = _common_attributes()
        self._attributes: list[Attribute] = []
        self._extensions: list[SchemaExtension] = []
        self.extend(list(attributes))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._id})"

    @property
    def name(self) -> str:
        """Name of the schema."""
        return self._name

    @property
    def id(self) -> SchemaUri:
        """URN of the schema."""
        return self._id

    @property
    def description(self) -> str:
        """Description of the schema."""
        return self._description

    @property
    def attributes(self) -> list[Attribute]:
        """Attributes declared by the schema. Common attributes are not included."""
        return list(self._attributes)

    @property
    def all_attributes(self) -> list[Attribute]:
        """Common attributes, followed by attributes declared by the schema."""
        return [*self._common_attributes, *self._attributes]

    @property
    def extensions(self) -> list[SchemaExtension]:
        """Schema extensions, in order of registration."""
        return list(self._extensions)

    def get_extension(self, id_: str) -> Optional[SchemaExtension]:
        """
        Returns registered extension with the provided id (case-insensitive), if any.
        """
        for extension in self._extensions:
            if extension.definition.id == id_:
                return extension
        return None

    def _find(self, name: str) -> Optional[Attribute]:
        for attr in self.all_attributes:
            if attr.name == name:
                return attr
        return None

    def attribute(self, path: str) -> Union[Attribute, "SchemaDefinition"]:
        """
        Returns attribute declared under the provided path. The path can point to
        sub-attributes (`name.givenName`) and can be namespaced with the schema's or
        extension's URN (`urn:ietf:params:scim:schemas:extension:enterprise:2.0:User:manager`).
        Extension URN alone returns the extension's definition.

        Raises:
            TypeError: If the schema does not declare the attribute.
        """
        if path.lower().startswith("urn:"):
            definitions = {
                extension.definition.id: extension.definition for extension in self._extensions
            }
            definitions[self._id] = self
            namespace, rest = split_namespace(path, list(definitions))
            if namespace is None:
                raise TypeError(
                    f"Schema definition '{self._id}' does not declare attribute '{path}'"
                )
            definition = definitions[namespace]
            return definition if not rest else definition.attribute(rest)

        parts = path.split(".")
        target = parts.pop(0)
        attr = self._find(target)
        if attr is None:
            raise TypeError(f"Schema definition '{self._id}' does not declare attribute '{target}'")
        spent = [target]
        while parts:
            if not isinstance(attr, Complex):
                raise TypeError(
                    f"Attribute '{'.'.join(spent)}' of schema '{self._id}' is not of type "
                    "'complex' and does not define any subAttributes"
                )
            target = parts.pop(0)
            sub_attr = attr.sub_attribute(target)
            if sub_attr is None:
                raise TypeError(
                    f"Attribute '{'.'.join(spent)}' of schema '{self._id}' "
                    f"does not declare subAttribute '{target}'"
                )
            attr = sub_attr
            spent.append(target)
        return attr

    def extend(
        self,
        extension: Union[
            Attribute, "SchemaDefinition", Iterable[Union[Attribute, "SchemaDefinition"]]
        ],
        required: bool = False,
    ) -> Self:
        """
        Adds attributes or extension schemas to the definition. Already registered items
        are skipped. Extensions of the provided extension are registered directly.

        Raises:
            TypeError: If attribute name or extension id is already declared.
        """
        items = extension if isinstance(extension, (list, tuple)) else [extension]
        for item in items:
            if isinstance(item, Attribute):
                self._extend_attribute(item)
            elif isinstance(item, SchemaDefinition):
                self._extend_definition(item, required)
            else:
                raise TypeError(
                    "Expected 'extensions' to be a collection of SchemaDefinition "
                    "or Attribute instances"
                )
        return self

    def _extend_attribute(self, attr: Attribute) -> None:
        if any(item is attr for item in self._attributes):
            return
        if self._find(attr.name) is not None:
            raise TypeError(
                f"Schema definition '{self._id}' already declares attribute '{attr.name}'"
            )
        self._attributes.append(attr)

    def _extend_definition(self, definition: "SchemaDefinition", required: bool) -> None:
        if definition is self:
            return
        if not any(item.definition is definition for item in self._extensions):
            if self.get_extension(definition.id) is not None:
                raise TypeError(
                    f"Schema definition '{self._id}' already declares extension '{definition.id}'"
                )
            for attr in definition.attributes:
                if self._find(attr.name) is not None:
                    warnings.warn(
                        message=(
                            f"Schema extension {str(definition.id)!r} defines {str(attr.name)!r} "
                            f"attribute, which is also present in base {str(self._id)!r} schema."
                        ),
                        category=ScimkitUserWarning,
                    )
            self._extensions.append(SchemaExtension(definition=definition, required=required))
        for nested in definition.extensions:
            self._extend_definition(nested.definition, nested.required)

    def truncate(self, targets: Any) -> Self:
        """
        Removes attributes or extensions from the definition. Targets can be attribute or
        definition instances, attribute names, dotted sub-attribute paths, or extension URNs.
        Targets that are not declared are ignored.
        """
        for target in targets if isinstance(targets, (list, tuple)) else [targets]:
            if isinstance(target, Attribute):
                self._attributes = [attr for attr in self._attributes if attr is not target]
            elif isinstance(target, SchemaDefinition):
                self._extensions = [
                    item for item in self._extensions if item.definition is not target
                ]
            elif isinstance(target, str):
                self._truncate_path(target)
        return self

    def _truncate_path(self, path: str) -> None:
        if path.lower().startswith("urn:"):
            namespace, rest = split_namespace(
                path, [item.definition.id for item in self._extensions]
            )
            if namespace is None:
                return
            if not rest:
                self._extensions = [
                    item for item in self._extensions if item.definition.id != namespace
                ]
            else:
                self.get_extension(namespace).definition.truncate(rest)
            return

        if "." not in path:
            self._attributes = [attr for attr in self._attributes if attr.name != path]
            return

        parent_path, _, sub_attr_name = path.rpartition(".")
        try:
            parent = self.attribute(parent_path)
        except TypeError:
            return
        truncated = parent.truncate(sub_attr_name)
        if truncated is parent:
            return
        self._attributes = [truncated if attr is parent else attr for attr in self._attributes]
        self._common_attributes = [
            truncated if attr is parent else attr for attr in self._common_attributes
        ]

    def definition(self, basepath: Optional[str] = None) -> dict[str, Any]:
        """
        Returns the schema definition document, as specified in RFC-7643, section 7.
        Common attributes are not included.
        """
        return {
            "schemas": [SCHEMA_SCHEMA],
            "id": str(self._id),
            "name": self._name,
            "description": self._description,
            "attributes": [attr.to_dict() for attr in self._attributes],
            "meta": {"resourceType": "Schema", "location": f"{basepath or ''}/{self._id}"},
        }

    def coerce(
        self,
        data: Mapping[str, Any],
        direction: Union[str, Direction] = Direction.BOTH,
        basepath: Optional[str] = None,
        filters: Optional[Any] = None,
    ) -> "SchemaInstance":
        """
        Coerces the provided data to a resource instance of the schema. Keys are matched
        case-insensitively. Extension attributes can be provided either under the extension's URN,
        or as namespaced keys (`<extension URN>:<attribute>`), and end up nested under
        the extension's URN. The `schemas` attribute and `meta.resourceType` (and `meta.location`,
        if `basepath` is provided) are synthesized.

        Args:
            data: Data to coerce.
            direction: Request direction. Attributes that do not participate in the direction
                are dropped.
            basepath: Base path of the resource's endpoint.
            filters: Filter (or anything `Filter` accepts), whose first branch selects returned
                attributes. Attributes compared with `pr` are included, and attributes compared
                with `np` are excluded. Attributes returned `always` are never excluded.

        Raises:
            TypeError: If data is not a mapping.
            ScimError: If the data does not meet the schema.
        """
        if not isinstance(data, Mapping):
            raise TypeError(
                "Expected 'data' to be a single complex value in SchemaDefinition coercion"
            )
        direction = Direction(direction)
        source = ScimData(data)
        self._check_schemas(source.get("schemas"))
        source["schemas"] = [str(self._id)]
        meta = source.get("meta")
        meta = ScimData(meta if isinstance(meta, Mapping) else None)
        meta["resourceType"] = self._name
        if basepath is not None:
            meta["location"] = f"{basepath}/{source['id']}" if source.get("id") else basepath
        source["meta"] = meta

        try:
            values = self._coerce_attributes(source, direction, self.all_attributes)
            extension_values = self._coerce_extensions(source, direction)
            values["schemas"] = self._find("schemas").coerce(
                [str(self._id), *extension_values], direction
            )
            values.update(extension_values)
        except (TypeError, ValueError) as error:
            raise ScimError(400, ScimErrorType.INVALID_VALUE, str(error))

        if filters is not None:
            if not isinstance(filters, Filter):
                filters = Filter(filters)
            branches = list(filters)
            if branches:
                values = _project(
                    values,
                    branches[0],
                    self.all_attributes,
                    {item.definition.id.lower(): item.definition for item in self._extensions},
                )
        return SchemaInstance.trusted(self, direction, values)

    def _check_schemas(self, schemas: Any) -> None:
        if not _is_sequence(schemas) or not schemas:
            return
        declared = [str(schema).lower() for schema in schemas]
        if self._id.lower() not in declared:
            raise ScimError(
                400,
                ScimErrorType.INVALID_SYNTAX,
                "The request body supplied a schema type that is incompatible with this resource",
            )
        for extension in self._extensions:
            if extension.required and extension.definition.id.lower() not in declared:
                raise ScimError(
                    400,
                    ScimErrorType.INVALID_VALUE,
                    f"The request body is missing schema extension '{extension.definition.id}' "
                    "required by this resource type",
                )

    @staticmethod
    def _coerce_attributes(
        source: ScimData, direction: Direction, attributes: Iterable[Attribute]
    ) -> dict[str, Any]:
        values = {}
        for attr in attributes:
            value = attr.coerce(source.get(attr.name), direction)
            if value is not None:
                values[str(attr.name)] = value
        return values

    def coerce_extension(self, value: Any, direction: Direction) -> "SchemaInstance":
        """
        Coerces the provided value as this schema's extension data. Common attributes
        are not considered.

        Raises:
            ValidationError: If the value does not meet the schema.
        """
        try:
            if not isinstance(value, Mapping):
                raise ValidationError.expected_complex(self._id, value)
            values = self._coerce_attributes(ScimData(value), direction, self._attributes)
        except ValidationError as error:
            raise error.add_context(f" in schema extension '{self._id}'")
        return SchemaInstance.trusted(self, direction, values, extension=True)

    def _coerce_extensions(self, source: ScimData, direction: Direction) -> dict[str, Any]:
        values = {}
        for extension in self._extensions:
            definition = extension.definition
            mixed = self._extension_source(source, definition.id)
            if not mixed:
                if extension.required:
                    raise ScimError(
                        400,
                        ScimErrorType.INVALID_VALUE,
                        f"Missing values for required schema extension '{definition.id}'",
                    )
                continue
            instance = definition.coerce_extension(mixed, direction)
            if instance:
                values[str(definition.id)] = instance
        return values

    @staticmethod
    def _extension_source(source: ScimData, id_: str) -> dict[str, Any]:
        mixed: dict[str, Any] = {}
        direct = source.get(id_)
        if direct is not None:
            if not isinstance(direct, Mapping):
                raise ValidationError.expected_complex(id_, direct).add_context(
                    f" in schema extension '{id_}'"
                )
            _merge(mixed, direct)
        prefix = id_.lower() + ":"
        for key, value in source.items():
            if not key.lower().startswith(prefix):
                continue
            nested = value
            for part in reversed(split_path(key[len(prefix) :])):
                nested = {part: nested}
            _merge(mixed, nested)
        return mixed


def _comparator(expression: Any) -> Optional[str]:
    if isinstance(expression, list) and expression and isinstance(expression[0], str):
        return expression[0].lower()
    return None


def _project(
    values: Mapping[str, Any],
    branch: Mapping[str, Any],
    attributes: Iterable[Attribute],
    extensions: dict[str, SchemaDefinition],
) -> dict[str, Any]:
    by_name = {attr.name.lower(): attr for attr in attributes}
    branch = {key.lower(): expression for key, expression in branch.items()}
    values = dict(values)

    for key in list(branch):
        if _comparator(branch[key]) != "np":
            continue
        attr = by_name.get(key)
        if attr is None or attr.returned_keyword != AttributeReturn.ALWAYS:
            for name in [name for name in values if name.lower() == key]:
                del values[name]
        del branch[key]
    if not branch:
        return values

    projected: dict[str, Any] = {}
    for name, value in values.items():
        key = name.lower()
        attr = by_name.get(key)
        expression = branch.get(key)
        if attr is not None and attr.returned_keyword == AttributeReturn.ALWAYS:
            projected[name] = value
        elif expression is None or (
            attr is not None and attr.returned_keyword == AttributeReturn.NEVER
        ):
            continue
        elif _comparator(expression) == "pr":
            projected[name] = value
        elif isinstance(expression, Mapping) and key in extensions:
            definition = extensions[key]
            selected = _project(value, expression, definition.attributes, {})
            if selected:
                projected[name] = SchemaInstance.trusted(
                    definition, value.direction, selected, extension=True
                )
        elif isinstance(expression, Mapping) and isinstance(attr, Complex):
            if attr.multi_valued:
                items = [_project_record(item, expression, attr) for item in value]
                items = [item for item in items if item]
                if items:
                    projected[name] = value.derive(items)
            elif selected := _project_record(value, expression, attr):
                projected[name] = selected
    return projected


def _project_record(record: Any, expression: Mapping[str, Any], attr: Complex) -> Any:
    return record.select(_project(record, expression, attr.sub_attributes, {}))


class SchemaInstance(ScimData):
    """
    Resource data bound to a schema definition, produced by `SchemaDefinition.coerce`.

    Only attributes declared by the schema can be assigned, extension data is nested under
    the extension's URN, and namespaced keys (`<extension URN>:<attribute>`) are routed to
    the nested extension data. Every assignment is coerced through the attribute's definition,
    and values of attributes that are not mutable can not be changed once defined.
    """

    def __init__(
        self,
        definition: SchemaDefinition,
        direction: Union[str, Direction] = Direction.BOTH,
        *,
        extension: bool = False,
    ):
        self._definition = definition
        self._direction = Direction(direction)
        self._extension = extension
        super().__init__()

    @classmethod
    def trusted(
        cls,
        definition: SchemaDefinition,
        direction: Union[str, Direction],
        values: Mapping[str, Any],
        *,
        extension: bool = False,
    ) -> "SchemaInstance":
        """
        Creates instance from already coerced values.
        """
        instance = cls(definition, direction, extension=extension)
        for key, value in values.items():
            instance._store(key, value)
        return instance

    def __repr__(self) -> str:
        return f"SchemaInstance({self._definition.id}, {str(self._data)})"

    @property
    def definition(self) -> SchemaDefinition:
        return self._definition

    @property
    def direction(self) -> Direction:
        return self._direction

    @property
    def is_extension(self) -> bool:
        """Whether the instance holds data of a schema extension."""
        return self._extension

    def attribute_for(self, key: str) -> Optional[Attribute]:
        if not isinstance(key, str):
            return None
        attributes = (
            self._definition.attributes if self._extension else self._definition.all_attributes
        )
        for attr in attributes:
            if attr.name == key:
                return attr
        return None

    def extension_data(self, id_: str) -> "SchemaInstance":
        """
        Returns nested data of the extension with the provided id. If the extension holds
        no data yet, an empty instance is attached, which is dropped again if it stays empty
        by the time the data is read.

        Raises:
            ValidationError: If the definition does not declare the extension.
        """
        extension = None if self._extension else self._definition.get_extension(id_)
        if extension is None:
            raise ValidationError.undeclared_attribute(self._definition.id, id_)
        nested = self._data.get(self._original_key(id_))
        if nested is None:
            nested = SchemaInstance(extension.definition, self._direction, extension=True)
            self._store(str(extension.definition.id), nested)
        return nested

    def _prune(self) -> None:
        for key in [
            key
            for key, value in self._data.items()
            if isinstance(value, SchemaInstance) and not value._data
        ]:
            self._discard(key)

    def __getitem__(self, key: str) -> Any:
        self._prune()
        return super().__getitem__(key)

    def __iter__(self) -> Iterator[str]:
        self._prune()
        return super().__iter__()

    def __len__(self) -> int:
        self._prune()
        return super().__len__()

    def __contains__(self, key: object) -> bool:
        self._prune()
        return super().__contains__(key)

    def to_dict(self) -> dict[str, Any]:
        self._prune()
        return super().to_dict()

    def __setitem__(self, key: str, value: Any) -> None:
        attr = self.attribute_for(key)
        if attr is not None:
            self._assign(attr, value)
            return
        if not self._extension:
            extension = self._definition.get_extension(key)
            if extension is not None:
                self._assign_extension(extension, value)
                return
            namespace, rest = split_namespace(
                key, [item.definition.id for item in self._definition.extensions]
            )
            if namespace is not None and rest:
                definition = self._definition.get_extension(namespace).definition
                nested = self._data.get(self._original_key(namespace))
                if nested is None:
                    nested = SchemaInstance(definition, self._direction, extension=True)
                nested[rest] = value
                self._store(str(definition.id), nested if nested._data else None)
                return
        raise ValidationError.undeclared_attribute(self._definition.id, key)

    def __delitem__(self, key: str) -> None:
        if key not in self:
            raise KeyError(key)
        self[key] = None

    def _assign(self, attr: Attribute, value: Any) -> None:
        try:
            coerced = attr.coerce(value, self._direction)
        except (TypeError, ValueError) as error:
            raise ScimError(400, ScimErrorType.INVALID_VALUE, str(error))
        _check_mutability(attr, self.get(attr.name), coerced)
        self._store(str(attr.name), coerced)

    def _assign_extension(self, extension: SchemaExtension, value: Any) -> None:
        definition = extension.definition
        if value is None:
            if extension.required:
                raise ScimError(
                    400,
                    ScimErrorType.INVALID_VALUE,
                    f"Missing values for required schema extension '{definition.id}'",
                )
            coerced = SchemaInstance(definition, self._direction, extension=True)
        else:
            try:
                coerced = definition.coerce_extension(value, self._direction)
            except (TypeError, ValueError) as error:
                raise ScimError(400, ScimErrorType.INVALID_VALUE, str(error))
        existing = self._data.get(self._original_key(definition.id))
        if existing is not None:
            for attr in definition.attributes:
                _check_mutability(attr, existing.get(attr.name), coerced.get(attr.name))
        self._store(str(definition.id), coerced if coerced._data else None)
