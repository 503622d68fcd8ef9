from __future__ import annotations

from .base import RecordReader

__all__ = [
    "ComponentReader",
]


class ComponentReader(RecordReader):
    """
    Stages the markup of Visualforce components.
    """

    sobject = "ApexComponent"
    fields = ["Name", "NamespacePrefix", "Markup"]
    folder = "components"
    extension = "component"
