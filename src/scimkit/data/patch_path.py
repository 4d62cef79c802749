import re
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from scimkit.data.filter import Filter
from scimkit.data.identifiers import split_namespace, split_path, split_urn
from scimkit.error import ScimError

_SEGMENT = re.compile(r"(?P<name>[^\[\]]+?)(?:\[(?P<filter>.*)\])?", re.DOTALL)


@dataclass(frozen=True)
class PathSegment:
    """
    Single step of the patch path: the attribute name and the optional value selection
    filter, applied to the attribute's values.
    """

    name: str
    filter: Optional[Filter] = None

    def serialize(self) -> str:
        if self.filter is None:
            return self.name
        return f"{self.name}[{self.filter.expression}]"


class PatchPath:
    """
    Target modification path, used in PATCH requests. Supports path syntax, as specified in
    RFC-7644, section 3.5.2, e.g. `emails[type eq "work"].value`. Each step of the path can
    carry a value selection filter, and the path can be namespaced with the schema's or
    extension's URN.
    """

    def __init__(self, segments: Iterable[PathSegment], namespace: Optional[str] = None):
        self._segments = tuple(segments)
        self._namespace = namespace

    @property
    def namespace(self) -> Optional[str]:
        """
        URN of the schema the path is namespaced with, if any.
        """
        return self._namespace

    @property
    def segments(self) -> tuple[PathSegment, ...]:
        return self._segments

    @property
    def attribute_path(self) -> str:
        """
        Path to the targeted attribute, with value selection filters stripped.
        """
        names = ".".join(segment.name for segment in self._segments)
        if self._namespace is None:
            return names
        return f"{self._namespace}:{names}" if names else self._namespace

    @classmethod
    def deserialize(cls, path_exp: str, namespaces: Iterable[str] = ()) -> "PatchPath":
        """
        Deserializes the provided path expression into a `PatchPath`.

        Args:
            path_exp: Path expression to deserialize.
            namespaces: Known schema URNs. If the path starts with any of them, the URN is split
                from the attribute path. Otherwise, the attribute path is expected after the last
                colon of the URN.

        Raises:
            ValueError: When `path_exp` is not a valid path expression.

        Returns:
            Deserialized `PatchPath`.
        """
        if not isinstance(path_exp, str) or not path_exp.strip():
            raise ValueError("invalid path expression")
        namespace, rest = None, path_exp
        if path_exp.lower().startswith("urn:"):
            namespace, rest = split_namespace(path_exp, list(namespaces))
            if namespace is None:
                namespace, rest = split_urn(path_exp)

        segments = []
        for part in split_path(rest):
            match = _SEGMENT.fullmatch(part)
            if match is None:
                raise ValueError("invalid path expression")
            filter_ = match.group("filter")
            try:
                segments.append(
                    PathSegment(
                        name=match.group("name").strip(),
                        filter=Filter(filter_) if filter_ is not None else None,
                    )
                )
            except (ScimError, TypeError):
                raise ValueError("invalid path expression")
        if not segments and namespace is None:
            raise ValueError("invalid path expression")
        return cls(segments, namespace)

    def serialize(self) -> str:
        """
        Serializes `PatchPath` to string expression.
        """
        serialized = ".".join(segment.serialize() for segment in self._segments)
        if self._namespace is None:
            return serialized
        return f"{self._namespace}:{serialized}" if serialized else self._namespace

    def without_last_filter(self) -> "PatchPath":
        """
        Returns the path to the attribute whose values are selected by the last step's filter.
        """
        if not self._segments:
            return self
        return PatchPath(
            [*self._segments[:-1], replace(self._segments[-1], filter=None)], self._namespace
        )

    def __repr__(self):
        return f"PatchPath({self.serialize()})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PatchPath):
            return False
        return self.serialize().lower() == other.serialize().lower()
