from __future__ import annotations

from .base import ArtifactRecord, RecordReader

__all__ = [
    "FlowReader",
]


class FlowReader(RecordReader):
    """
    Stages an empty placeholder per flow definition; only the flow's
    existence is mirrored, not its definition.
    """

    sobject = "FlowDefinition"
    fields = ["DeveloperName", "NamespacePrefix"]
    folder = "flows"
    extension = "flow"

    def _render(self, record: ArtifactRecord) -> str:
        return ""
