"""
Common functionality of metadata readers.
"""
from __future__ import annotations

import logging
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import Logger
from pathlib import PurePosixPath
from typing import Any, ClassVar, Iterable

from pydantic import AliasChoices, BaseModel, Field

from ..session import Connection
from ..stubfs import StubFS

__all__ = [
    "Failure",
    "ArtifactRecord",
    "MetadataReader",
    "RecordReader",
    "UNMANAGED",
    "HIDDEN",
    "group_by_namespace",
]

UNMANAGED = "unmanaged"
"""
Folder name for artifacts without a namespace.
"""

HIDDEN = "(hidden)"
"""
Body reported by the org in place of content the caller may not see.
"""


@dataclass(frozen=True, kw_only=True)
class Failure:
    """
    Describes why a reader failed.
    """

    reader: str
    """
    Name of reader class.
    """

    message: str
    """
    Human-readable cause.
    """

    stack: str | None = None
    """
    Formatted traceback, if caused by an exception.
    """

    @classmethod
    def from_exception(cls, reader: str, exc: BaseException) -> Failure:
        return Failure(
            reader=reader,
            message=str(exc) or type(exc).__name__,
            stack="".join(traceback.format_exception(exc)),
        )


class ArtifactRecord(BaseModel):
    """
    Record returned by a metadata query.
    """

    name: str = Field(
        validation_alias=AliasChoices(
            "Name", "DeveloperName", "QualifiedApiName", "name"
        )
    )
    namespace: str | None = Field(
        default=None,
        validation_alias=AliasChoices("NamespacePrefix", "namespace"),
    )
    body: str | None = Field(
        default=None, validation_alias=AliasChoices("Body", "Markup", "body")
    )

    @property
    def hidden(self) -> bool:
        return self.body == HIDDEN


def group_by_namespace(
    records: Iterable[ArtifactRecord],
) -> dict[str, list[ArtifactRecord]]:
    """
    Partition records by the folder of their namespace, preserving the order
    of records within each namespace.
    """
    groups: dict[str, list[ArtifactRecord]] = dict()

    for record in records:
        groups.setdefault(record.namespace or UNMANAGED, []).append(record)

    return groups


class MetadataReader(ABC):
    """
    Reads one kind of artifact from the org and stages the corresponding
    files in the mirror.
    """

    _connection: Connection
    _org_namespace: str | None
    """
    Namespace owned by the org itself, if any.
    """

    _namespaces: list[str]
    """
    Namespaces of installed packages to read, besides org namespace.
    """

    _stubfs: StubFS
    _logger: Logger

    def __init__(
        self,
        connection: Connection,
        org_namespace: str | None,
        namespaces: Iterable[str],
        stubfs: StubFS,
        *,
        logger: Logger | None = None,
    ):
        self._connection = connection
        self._org_namespace = org_namespace
        self._namespaces = sorted(set(namespaces) - {org_namespace})
        self._stubfs = stubfs
        self._logger = logger or logging.getLogger()

    def __str__(self):
        return f"{type(self).__name__}: org_namespace={self._org_namespace}, namespaces={self._namespaces}"

    async def run(self) -> Failure | None:
        """
        Read and stage artifacts, returning a failure rather than raising so
        that other readers are not interrupted.
        """
        try:
            await self._read()
        except Exception as e:
            failure = Failure.from_exception(type(self).__name__, e)
            self._logger.debug(f"{self} failed:\n{failure.stack}")
            return failure

        return None

    @abstractmethod
    async def _read(self):
        ...

    def _namespace_filter(self, installed_condition: str | None = None) -> str:
        """
        Get SOQL condition selecting unmanaged, org namespace and requested
        namespace records. Optional extra condition is applied to requested
        (installed package) namespaces only.
        """
        conditions = ["NamespacePrefix = null"]

        if self._org_namespace:
            conditions.append(f"NamespacePrefix = '{self._org_namespace}'")

        for namespace in self._namespaces:
            condition = f"NamespacePrefix = '{namespace}'"
            if installed_condition:
                condition = f"({condition} AND {installed_condition})"
            conditions.append(condition)

        return " OR ".join(conditions)


class RecordReader(MetadataReader):
    """
    Reader for artifacts which map one record to one file.
    """

    sobject: ClassVar[str]
    """
    Record type to query.
    """

    fields: ClassVar[list[str]]
    """
    Fields to select.
    """

    condition: ClassVar[str | None] = None
    """
    Extra condition applied to all records.
    """

    folder: ClassVar[str]
    """
    Folder within namespace folder.
    """

    extension: ClassVar[str]
    """
    File extension, without leading `.`.
    """

    async def _read(self):
        records = await self._query()

        visible = [r for r in records if not r.hidden]
        if len(visible) != len(records):
            self._logger.debug(
                f"Skipping {len(records) - len(visible)} hidden {self.sobject} records"
            )

        for folder, group in group_by_namespace(visible).items():
            self._stage(folder, group)
            self._logger.debug(
                f"Staged {len(group)} {self.sobject} records for '{folder}'"
            )

    async def _query(self) -> list[ArtifactRecord]:
        where = self._namespace_filter()
        if self.condition:
            where = f"{self.condition} AND ({where})"

        results: list[dict[str, Any]] = await self._connection.query(
            self.sobject, self.fields, where
        )
        return [ArtifactRecord.model_validate(r) for r in results]

    def _stage(self, folder: str, records: list[ArtifactRecord]):
        for record in records:
            self._stubfs.stage(
                PurePosixPath(folder)
                / self.folder
                / f"{record.name}.{self.extension}",
                self._render(record),
            )

    def _render(self, record: ArtifactRecord) -> str:
        return record.body or ""
