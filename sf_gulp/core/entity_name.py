"""
Parsing and rendering of namespaced API names such as `ns__Account_Ext__c`.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable

__all__ = [
    "ArtifactType",
    "EntityName",
    "OBJECT_TYPES",
    "FIELD_TYPES",
    "SEPARATOR",
]

SEPARATOR = "__"
"""
Reserved separator between namespace, name and suffix.
"""


class ArtifactType(Enum):
    """
    Kind of artifact identified by an API name suffix.
    """

    CUSTOM_OBJECT = "custom-object"
    CUSTOM_METADATA_TYPE = "custom-metadata-type"
    PLATFORM_EVENT = "platform-event"
    BIG_OBJECT = "big-object"
    CUSTOM_FIELD = "custom-field"

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]


_SUFFIXES: dict[ArtifactType, str] = {
    ArtifactType.CUSTOM_OBJECT: "c",
    ArtifactType.CUSTOM_METADATA_TYPE: "mdt",
    ArtifactType.PLATFORM_EVENT: "e",
    ArtifactType.BIG_OBJECT: "b",
    ArtifactType.CUSTOM_FIELD: "c",
}

OBJECT_TYPES: frozenset[ArtifactType] = frozenset(
    {
        ArtifactType.CUSTOM_OBJECT,
        ArtifactType.CUSTOM_METADATA_TYPE,
        ArtifactType.PLATFORM_EVENT,
        ArtifactType.BIG_OBJECT,
    }
)
"""
Artifact types recognized as objects.
"""

FIELD_TYPES: frozenset[ArtifactType] = frozenset({ArtifactType.CUSTOM_FIELD})
"""
Artifact types recognized as fields.
"""


@dataclass(frozen=True)
class EntityName:
    """
    API name split into its optional namespace, local name and artifact type.
    """

    namespace: str | None
    name: str
    artifact_type: ArtifactType

    @classmethod
    def parse(
        cls, api_name: str, allowed_types: Iterable[ArtifactType]
    ) -> EntityName | None:
        """
        Parse an API name, returning `None` if it does not name one of the
        allowed artifact types.

        :param api_name: Name as reported by the org, e.g. `ns__Foo__c`
        :param allowed_types: Types to accept, e.g. {obj}`OBJECT_TYPES`
        """
        parts = api_name.split(SEPARATOR)
        if len(parts) not in (2, 3) or not all(parts):
            return None

        suffix = parts[-1]
        artifact_type = next(
            (t for t in allowed_types if t.suffix == suffix), None
        )
        if artifact_type is None:
            return None

        if len(parts) == 2:
            return cls(None, parts[0], artifact_type)
        return cls(parts[0], parts[1], artifact_type)

    def full_name(self) -> str:
        return SEPARATOR.join(
            [self.developer_name(), self.artifact_type.suffix]
        )

    def developer_name(self) -> str:
        if self.namespace is None:
            return self.name
        return f"{self.namespace}{SEPARATOR}{self.name}"

    def with_default_namespace(self, namespace: str | None) -> EntityName:
        """
        Attribute a field reported without a namespace to the given (home)
        namespace. Other names are returned unchanged.
        """
        if (
            self.namespace is None
            and namespace
            and self.artifact_type is ArtifactType.CUSTOM_FIELD
        ):
            return replace(self, namespace=namespace)
        return self

    def __str__(self) -> str:
        return self.full_name()
