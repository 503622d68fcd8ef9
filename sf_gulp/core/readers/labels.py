from __future__ import annotations

from pathlib import PurePosixPath
from xml.sax.saxutils import escape

from ..utils import METADATA_NS
from .base import ArtifactRecord, RecordReader

__all__ = [
    "LabelReader",
    "LABELS_FILENAME",
]

LABELS_FILENAME = "CustomLabels.labels-meta.xml"
"""
Name of the single labels file in each namespace folder.
"""

LABEL_TEMPLATE = """\
    <labels>
        <fullName>{name}</fullName>
        <language>en_US</language>
        <protected>false</protected>
        <shortDescription></shortDescription>
        <value></value>
    </labels>"""


class LabelReader(RecordReader):
    """
    Stages one labels file per namespace listing the names of its custom
    labels. Label values are not mirrored.
    """

    sobject = "ExternalString"
    fields = ["Name", "NamespacePrefix"]

    def _namespace_filter(self, installed_condition: str | None = None) -> str:
        # protected labels of installed packages can't be referenced
        return super()._namespace_filter(
            installed_condition or "IsProtected = false"
        )

    def _stage(self, folder: str, records: list[ArtifactRecord]):
        self._stubfs.stage(
            PurePosixPath(folder) / LABELS_FILENAME, render_labels(records)
        )


def render_labels(records: list[ArtifactRecord]) -> str:
    """
    Render labels document with entries sorted by name.
    """
    names = sorted({r.name for r in records})
    labels = "\n".join(LABEL_TEMPLATE.format(name=escape(n)) for n in names)

    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<CustomLabels xmlns="{METADATA_NS}">\n'
        f"{labels}\n"
        "</CustomLabels>\n"
    )
