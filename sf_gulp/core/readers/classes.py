from __future__ import annotations

from .base import RecordReader

__all__ = [
    "ClassReader",
]


class ClassReader(RecordReader):
    """
    Stages the source of active Apex classes.
    """

    sobject = "ApexClass"
    fields = ["Name", "NamespacePrefix", "Body"]
    condition = "Status = 'Active'"
    folder = "classes"
    extension = "cls"
