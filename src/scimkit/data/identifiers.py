import re
from typing import Any, Iterable, Optional, cast

_ATTR_NAME = re.compile(r"[$\-_a-zA-Z0-9]+")
_INVALID_NAME_CHAR = re.compile(r"[^$\-_a-zA-Z0-9]")
_URI_PREFIX = re.compile(r"(?:[\w.-]+:)*")


class AttrName(str):
    """
    Represents unbounded attribute name. Must conform attribute name notation, as
    specified in RFC-7643.

    Attribute names are case-insensitive.

    Raises:
        ValueError: If the provided value is not valid attribute name.
    """

    def __repr__(self):
        return f"AttrName({self})"

    def __new__(cls, value: str) -> "AttrName":
        if not isinstance(value, AttrName) and not _ATTR_NAME.fullmatch(value):
            raise ValueError(f"{value!r} is not valid attr name")
        return cast(AttrName, str.__new__(cls, value))

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, str):
            other = other.lower()
        return self.lower() == other

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.lower())


class SchemaUri(str):
    """
    Represents schema URI.

    Schema URIs are case-insensitive.

    Raises:
        ValueError: If the provided value is not valid schema URI.
    """

    def __new__(cls, value: str) -> "SchemaUri":
        if not isinstance(value, SchemaUri) and not _URI_PREFIX.fullmatch(value + ":"):
            raise ValueError(f"{value!r} is not a valid schema URI")
        return cast(SchemaUri, str.__new__(cls, value))

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, str):
            other = other.lower()
        return self.lower() == other

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.lower())


def find_invalid_name_character(name: str) -> Optional[str]:
    """
    Returns the first character of `name` that is not allowed in attribute names, if any.
    """
    match = _INVALID_NAME_CHAR.search(name)
    return match.group(0) if match else None


def lower_first(name: str) -> str:
    """
    Lowercases the first letter of the name, so `UserName` becomes `userName`.
    """
    return name[:1].lower() + name[1:]


def split_namespace(path: str, namespaces: Iterable[str]) -> tuple[Optional[str], str]:
    """
    Splits the URN namespace from the attribute path. The longest matching namespace wins,
    so extension URNs that share the prefix with the core schema are resolved correctly.

    Returns:
        Matched namespace (as provided in `namespaces`) and the rest of the path. If no
        namespace matches, `None` and the unchanged path are returned.

    Examples:
        >>> split_namespace(
        >>>     "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User:manager.value",
        >>>     ["urn:ietf:params:scim:schemas:extension:enterprise:2.0:User"],
        >>> )
        ("urn:ietf:params:scim:schemas:extension:enterprise:2.0:User", "manager.value")
    """
    lowered = path.lower()
    matched = None
    for namespace in namespaces:
        candidate = namespace.lower()
        if lowered == candidate or lowered.startswith(candidate + ":"):
            if matched is None or len(namespace) > len(matched):
                matched = namespace
    if matched is None:
        return None, path
    return matched, path[len(matched) + 1 :]


def split_urn(path: str) -> tuple[Optional[str], str]:
    """
    Splits a URN-namespaced path into the namespace and the attribute path, without knowing
    the namespaces upfront. The attribute path starts after the last colon.
    """
    if not path.lower().startswith("urn:") or ":" not in path:
        return None, path
    namespace, _, rest = path.rpartition(":")
    return namespace, rest


def split_path(path: str) -> list[str]:
    """
    Splits the attribute path by dots that are not enclosed in value filters
    or string literals.

    Examples:
        >>> split_path('emails[value ew "example.com"].display')
        ['emails[value ew "example.com"]', 'display']
    """
    parts = []
    current = ""
    depth = 0
    in_string = False
    escaped = False
    for char in path:
        if in_string:
            current += char
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        elif char == "." and depth == 0:
            parts.append(current)
            current = ""
            continue
        current += char
    parts.append(current)
    return [part for part in parts if part]
