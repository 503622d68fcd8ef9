from __future__ import annotations

from .base import RecordReader

__all__ = [
    "PageReader",
]


class PageReader(RecordReader):
    """
    Stages the markup of Visualforce pages.
    """

    sobject = "ApexPage"
    fields = ["Name", "NamespacePrefix", "Markup"]
    folder = "pages"
    extension = "page"
