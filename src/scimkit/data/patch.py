import inspect
from collections.abc import Mapping, MutableSequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from scimkit import config
from scimkit.data.attrs import Attribute, Complex
from scimkit.data.constants import PATCH_OP_SCHEMA, Direction
from scimkit.data.filter import Filter
from scimkit.data.identifiers import SchemaUri
from scimkit.data.patch_path import PatchPath, PathSegment
from scimkit.data.schemas import SchemaDefinition, SchemaInstance
from scimkit.data.scim_data import ScimData
from scimkit.error import ScimError, ScimErrorType, ValidationError

Finaliser = Callable[[SchemaInstance], Union[Any, Awaitable[Any]]]


class PatchOperationType(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, MutableSequence))


def _suffix(op: str, index: int) -> str:
    return f" for '{op}' op of operation {index} in PatchOp request body"


@dataclass(frozen=True)
class PatchOperation:
    """
    Single operation of the PATCH request, as specified in RFC-7644, section 3.5.2.
    `index` is the 1-based position of the operation in the request.
    """

    type: PatchOperationType
    index: int
    path: Optional[str] = None
    value: Any = None

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "PatchOperation":
        """
        Creates the operation from its request body representation.

        Raises:
            ScimError: If the operation is malformed.
        """
        if not isinstance(data, Mapping):
            raise ScimError(
                400,
                ScimErrorType.INVALID_SYNTAX,
                f"Expected operation {index} to be an object in PatchOp request body",
            )
        data = ScimData(data)
        op = data.get("op")
        if op is None:
            raise ScimError(
                400,
                ScimErrorType.INVALID_VALUE,
                f"Missing required attribute 'op' from operation {index} in PatchOp request body",
            )
        if not isinstance(op, str) or op.lower() not in {item.value for item in PatchOperationType}:
            raise ScimError(
                400,
                ScimErrorType.INVALID_SYNTAX,
                f"Invalid operation '{op}' for operation {index} in PatchOp request body",
            )
        type_ = PatchOperationType(op.lower())
        if type_ == PatchOperationType.ADD and "value" not in data:
            raise ScimError(
                400,
                ScimErrorType.INVALID_VALUE,
                f"Missing required attribute 'value'{_suffix(type_.value, index)}",
            )
        if type_ == PatchOperationType.REMOVE and "path" not in data:
            raise ScimError(
                400,
                ScimErrorType.NO_TARGET,
                f"Missing required attribute 'path'{_suffix(type_.value, index)}",
            )
        path = data.get("path")
        if path is not None and not isinstance(path, str):
            raise ScimError(
                400,
                ScimErrorType.INVALID_PATH,
                f"Invalid path '{path}' for operation {index} in PatchOp request body",
            )
        return cls(type=type_, index=index, path=path, value=data.get("value"))

    def to_dict(self) -> dict[str, Any]:
        output: dict[str, Any] = {"op": self.type.value}
        if self.path is not None:
            output["path"] = self.path
        if self.value is not None:
            output["value"] = self.value
        return output


@dataclass
class _Resolution:
    attribute: Union[Attribute, SchemaDefinition]
    targets: list[Mapping]
    # name of the targeted attribute; not set if the last step selects values with a filter
    property: Optional[str]
    multi_valued: bool

    @property
    def complex(self) -> bool:
        return isinstance(self.attribute, (SchemaDefinition, Complex))


class _PatchTarget:
    """
    Working copy of the patched resource, and the handlers of the individual operations.
    """

    def __init__(self, resource: SchemaInstance):
        self.definition = resource.definition
        self.data = self.definition.coerce(resource.to_dict(), Direction.OUT)
        self._namespaces = [
            str(self.definition.id),
            *(str(item.definition.id) for item in self.definition.extensions),
        ]

    def to_dict(self) -> dict[str, Any]:
        data = self.data.to_dict()
        data["schemas"] = [
            self._namespaces[0],
            *(namespace for namespace in self._namespaces[1:] if data.get(namespace)),
        ]
        return data

    def apply(self, operation: PatchOperation) -> None:
        if operation.type == PatchOperationType.ADD:
            self.add(operation.index, operation.path, operation.value)
        elif operation.type == PatchOperationType.REMOVE:
            self.remove(operation.index, operation.path, operation.value)
        else:
            self.replace(operation.index, operation.path, operation.value)

    def _resolve(
        self,
        index: int,
        path_exp: str,
        op: str,
        path: Optional[PatchPath] = None,
    ) -> _Resolution:
        try:
            if path is None:
                path = PatchPath.deserialize(path_exp, self._namespaces)
            attribute = self.definition.attribute(path.attribute_path)
        except (TypeError, ValueError):
            raise ScimError(
                400,
                ScimErrorType.INVALID_PATH,
                f"Invalid path '{path_exp}'{_suffix(op, index)}",
            )

        steps = list(path.segments)
        if path.namespace is not None and SchemaUri(path.namespace) != self.definition.id:
            steps.insert(0, PathSegment(path.namespace))
        if not steps:
            raise ScimError(
                400,
                ScimErrorType.INVALID_PATH,
                f"Invalid path '{path_exp}'{_suffix(op, index)}",
            )

        targets: list[Mapping] = [self.data]
        property_ = None
        for position, step in enumerate(steps):
            if position == len(steps) - 1 and step.filter is None:
                property_ = step.name
                break
            next_targets: list[Mapping] = []
            for target in targets:
                value = target.get(step.name)
                if step.filter is not None:
                    if _is_sequence(value):
                        next_targets.extend(step.filter.match(value))
                elif value is None:
                    if op != PatchOperationType.REMOVE:
                        created = self._container(target, step.name)
                        if created is not None:
                            next_targets.append(created)
                elif _is_sequence(value):
                    next_targets.extend(item for item in value if isinstance(item, Mapping))
                elif isinstance(value, Mapping):
                    next_targets.append(value)
            targets = next_targets

        if not targets:
            raise ScimError(
                400,
                ScimErrorType.NO_TARGET,
                f"Filter '{path_exp}' does not match any values{_suffix(op, index)}",
            )
        return _Resolution(
            attribute=attribute,
            targets=targets,
            property=property_,
            multi_valued=(
                property_ is not None
                and isinstance(attribute, Attribute)
                and attribute.multi_valued
            ),
        )

    @staticmethod
    def _container(target: Mapping, name: str) -> Optional[Mapping]:
        if not isinstance(target, SchemaInstance):
            return None
        if not target.is_extension and target.definition.get_extension(name) is not None:
            return target.extension_data(name)
        attr = target.attribute_for(name)
        if isinstance(attr, Complex) and not attr.multi_valued:
            target[name] = {}
            return target.get(name)
        return None

    @staticmethod
    def _merge(target: Any, value: Any, name: str) -> None:
        if not isinstance(value, Mapping):
            raise ValidationError.expected_complex(name, value)
        for key, item in value.items():
            target[key] = item

    def _assign_top_level(self, index: int, op: str, key: str, value: Any) -> None:
        try:
            self.data[key] = value
        except ScimError as error:
            raise error.with_suffix(_suffix(op, index))
        except (TypeError, ValueError):
            raise ScimError(
                400,
                ScimErrorType.INVALID_VALUE,
                f"Value '{value}' not valid for attribute '{key}' of '{op}' operation {index} "
                "in PatchOp request body",
            )

    def _is_core_namespace(self, key: str) -> bool:
        return isinstance(key, str) and key.lower() == self.definition.id.lower()

    def _expect_object(self, index: int, op: str, value: Any) -> None:
        if not isinstance(value, Mapping):
            raise ScimError(
                400,
                ScimErrorType.INVALID_VALUE,
                f"Attribute 'value' must be an object when 'path' is empty{_suffix(op, index)}",
            )

    def add(self, index: int, path: Optional[str], value: Any) -> None:
        op = PatchOperationType.ADD.value
        if path is None:
            self._expect_object(index, op, value)
            for key, item in value.items():
                if self._is_core_namespace(key) and isinstance(item, Mapping):
                    self.add(index, None, item)
                elif isinstance(item, Mapping) or _is_sequence(item):
                    self.add(index, key, item)
                else:
                    self._assign_top_level(index, op, key, item)
            return

        resolution = self._resolve(index, path, op)
        name = resolution.property
        for target in resolution.targets:
            try:
                if resolution.multi_valued:
                    existing = list(target.get(name) or [])
                    values = list(value) if _is_sequence(value) else [value]
                    # values that are already present are not duplicated
                    new = [item for item in values if item not in existing]
                    target[name] = [*existing, *new]
                elif resolution.complex:
                    if name is None:
                        self._merge(target, value, path)
                    elif target.get(name) is None:
                        target[name] = value
                    else:
                        self._merge(target[name], value, name)
                else:
                    target[name] = value
            except ScimError as error:
                raise error.with_suffix(_suffix(op, index))
            except (TypeError, ValueError) as error:
                raise ScimError(
                    400, ScimErrorType.INVALID_VALUE, f"{error}{_suffix(op, index)}"
                )

    def remove(self, index: int, path: str, value: Any = None) -> None:
        op = PatchOperationType.REMOVE.value
        resolution = self._resolve(index, path, op)
        name = resolution.property
        try:
            if name is None:
                self._remove_selected(index, path, resolution.targets)
                return
            for target in resolution.targets:
                if value is None or not resolution.multi_valued:
                    target[name] = None
                    continue
                existing = list(target.get(name) or [])
                values = list(value) if _is_sequence(value) else [value]
                if resolution.complex:
                    removals = self._matching(existing, values)
                    remaining = [item for item in existing if not any(item is r for r in removals)]
                else:
                    remaining = [item for item in existing if item not in values]
                target[name] = remaining or None
        except ScimError as error:
            raise error.with_suffix(_suffix(op, index))
        except (TypeError, ValueError) as error:
            raise ScimError(400, ScimErrorType.INVALID_VALUE, f"{error}{_suffix(op, index)}")

    @staticmethod
    def _matching(existing: list[Any], values: list[Any]) -> list[Any]:
        branches = [
            {key: ["eq", item] for key, item in value.items() if item is not None}
            for value in values
            if isinstance(value, Mapping)
        ]
        branches = [branch for branch in branches if branch]
        if not branches:
            return []
        return Filter(branches).match(existing)

    def _remove_selected(self, index: int, path: str, selected: list[Mapping]) -> None:
        op = PatchOperationType.REMOVE.value
        parent_path = PatchPath.deserialize(path, self._namespaces).without_last_filter()
        parent = self._resolve(index, path, op, parent_path)
        for target in parent.targets:
            existing = target.get(parent.property)
            if not _is_sequence(existing):
                continue
            remaining = [item for item in existing if not any(item is s for s in selected)]
            if len(remaining) != len(existing):
                target[parent.property] = remaining or None

    def replace(self, index: int, path: Optional[str], value: Any) -> None:
        op = PatchOperationType.REPLACE.value
        if path is None:
            self._expect_object(index, op, value)
            for key, item in value.items():
                if self._is_core_namespace(key) and isinstance(item, Mapping):
                    self.replace(index, None, item)
                else:
                    self._assign_top_level(index, op, key, item)
            return

        resolution = self._resolve(index, path, op)
        name = resolution.property
        for target in resolution.targets:
            try:
                if name is None:
                    self._merge(target, value, path)
                elif resolution.multi_valued and value is not None and not _is_sequence(value):
                    target[name] = [value]
                else:
                    target[name] = value
            except ScimError as error:
                raise error.with_suffix(_suffix(op, index))
            except (TypeError, ValueError) as error:
                raise ScimError(
                    400, ScimErrorType.INVALID_VALUE, f"{error}{_suffix(op, index)}"
                )


def _without_meta(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key.lower() != "meta"}


class PatchOp:
    """
    PATCH request message, as specified in
    [RFC-7644, section 3.5.2](https://www.rfc-editor.org/rfc/rfc7644#section-3.5.2).
    The request body is validated eagerly; operations are applied to resources with `apply`.

    Args:
        request: Body of the PATCH request.

    Raises:
        ScimError: If the service provider does not support PATCH (status 501), or the request
            body is malformed.

    Examples:
        >>> patch = PatchOp(
        >>>     {
        >>>         "schemas": ["urn:ietf:params:scim:api:messages:2.0:PatchOp"],
        >>>         "Operations": [{"op": "add", "value": {"displayName": "Bob"}}],
        >>>     }
        >>> )
        >>> patched = asyncio.run(patch.apply(user))
    """

    def __init__(self, request: Mapping[str, Any]):
        if not config.service_provider_config.patch.supported:
            raise ScimError(501, None, "PATCH operation is not supported by the service provider")

        request = ScimData(request if isinstance(request, Mapping) else None)
        schemas = request.get("schemas")
        if (
            not _is_sequence(schemas)
            or len(schemas) != 1
            or not isinstance(schemas[0], str)
            or SchemaUri(PATCH_OP_SCHEMA) != schemas[0]
        ):
            raise ScimError(
                400,
                ScimErrorType.INVALID_SYNTAX,
                "PatchOp request body messages must exclusively specify schema "
                f"as '{PATCH_OP_SCHEMA}'",
            )

        operations = request.get("Operations")
        if not _is_sequence(operations) or not operations:
            raise ScimError(
                400,
                ScimErrorType.INVALID_VALUE,
                "PatchOp request body must contain 'Operations' attribute "
                "with at least one operation",
            )
        self._operations = [
            PatchOperation.from_dict(operation, index)
            for index, operation in enumerate(operations, start=1)
        ]

    @property
    def schemas(self) -> list[str]:
        return [PATCH_OP_SCHEMA]

    @property
    def operations(self) -> list[PatchOperation]:
        return list(self._operations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemas": self.schemas,
            "Operations": [operation.to_dict() for operation in self._operations],
        }

    async def apply(
        self, resource: SchemaInstance, finalise: Optional[Finaliser] = None
    ) -> Optional[SchemaInstance]:
        """
        Applies the operations, in order, to the working copy of the resource. The resource
        itself is never modified.

        Args:
            resource: Resource to patch.
            finalise: Called with the patched data, as a plain dictionary, once all operations
                are applied. Can be a coroutine function. The returned data (or the passed
                dictionary, if nothing is returned) is coerced into the patched resource.

        Returns:
            Patched resource, or `None` if nothing but `meta` changed.

        Raises:
            TypeError: If the resource is not a resource instance.
            ScimError: If any of the operations can not be applied, or `finalise` fails.
        """
        if not isinstance(resource, SchemaInstance) or resource.is_extension:
            raise TypeError("PatchOp expected 'resource' to be an instance of SchemaInstance")

        target = _PatchTarget(resource)
        for operation in self._operations:
            target.apply(operation)

        patched = target.to_dict()
        if finalise is not None:
            try:
                result = finalise(patched)
                if inspect.isawaitable(result):
                    result = await result
            except ScimError:
                raise
            except Exception as error:
                raise ScimError(400, ScimErrorType.INVALID_VALUE, str(error))
            if result is not None:
                patched = result.to_dict() if isinstance(result, ScimData) else result
        patched = target.definition.coerce(patched, Direction.OUT)

        if _without_meta(patched.to_dict()) == _without_meta(resource.to_dict()):
            return None
        return patched
