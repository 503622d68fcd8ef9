"""
Orchestration of a mirror update.
"""
from __future__ import annotations

import asyncio
import logging
from logging import Logger
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel

from .exceptions import GulpError
from .readers import (
    ClassReader,
    ComponentReader,
    Failure,
    FlowReader,
    LabelReader,
    MetadataReader,
    PageReader,
    SObjectReader,
)
from .session import Connection
from .stubfs import StubFS, SyncStats

__all__ = [
    "Gulp",
    "PackageNamespace",
    "READERS",
]
__canonical_syms__ = __all__

READERS: list[type[MetadataReader]] = [
    ClassReader,
    PageReader,
    ComponentReader,
    FlowReader,
    LabelReader,
    SObjectReader,
]
"""
Readers run for each update.
"""


class PackageNamespace(BaseModel):
    """
    Package installed in the org.
    """

    namespace: str
    name: str | None = None
    description: str | None = None


class Gulp:
    """
    Refreshes the mirror of an org's metadata in a workspace.

    Example:

    ```
    session = Session(instance_url, access_token)
    stats = asyncio.run(Gulp(session).update(Path("."), ["ns1"]))
    ```
    """

    _connection: Connection
    _logger: Logger

    def __init__(self, connection: Connection, *, logger: Logger | None = None):
        self._connection = connection
        self._logger = logger or logging.getLogger()

    async def get_org_namespace(self) -> str | None:
        """
        Get namespace owned by the org, or `None` if it doesn't have exactly
        one.
        """
        records = await self._connection.query(
            "Organization", ["NamespacePrefix"], tooling=False
        )
        namespaces = {
            r["NamespacePrefix"] for r in records if r.get("NamespacePrefix")
        }

        if len(namespaces) > 1:
            self._logger.warning(
                f"Org has multiple namespaces, treating as unnamespaced: {sorted(namespaces)}"
            )

        return namespaces.pop() if len(namespaces) == 1 else None

    async def get_org_packages(self) -> list[PackageNamespace]:
        """
        Get namespaced packages installed in the org, sorted by namespace.
        """
        records = await self._connection.query(
            "InstalledSubscriberPackage",
            [
                "SubscriberPackage.NamespacePrefix",
                "SubscriberPackage.Name",
                "SubscriberPackage.Description",
            ],
        )

        packages: list[PackageNamespace] = []
        for record in records:
            package = record.get("SubscriberPackage") or {}
            if package.get("NamespacePrefix"):
                packages.append(
                    PackageNamespace(
                        namespace=package["NamespacePrefix"],
                        name=package.get("Name"),
                        description=package.get("Description"),
                    )
                )

        return sorted(packages, key=lambda p: p.namespace)

    async def update(
        self,
        workspace: Path,
        namespaces: Iterable[str] = (),
        *,
        dry_run: bool = False,
    ) -> SyncStats:
        """
        Read metadata of unmanaged, org namespace and requested package
        namespaces and reconcile the mirror with it. The mirror is only
        updated if all readers succeed.

        :param workspace: Folder containing the mirror
        :param namespaces: Installed package namespaces to include
        :param dry_run: Only log changes to the mirror
        :raises GulpError: If any reader failed
        """
        org_namespace = await self.get_org_namespace()
        package_namespaces = set(namespaces) - {org_namespace}

        self._logger.debug(
            f"Updating mirror in '{workspace}': org namespace={org_namespace}, namespaces={sorted(package_namespaces)}"
        )

        stubfs = StubFS(workspace, logger=self._logger)
        readers = [
            reader_cls(
                self._connection,
                org_namespace,
                package_namespaces,
                stubfs,
                logger=self._logger,
            )
            for reader_cls in READERS
        ]

        # wait for every reader before syncing
        results = await asyncio.gather(*(r.run() for r in readers))
        failures: list[Failure] = [f for f in results if f is not None]

        if len(failures):
            for failure in failures:
                self._logger.error(
                    f"{failure.reader} failed: {failure.message}"
                )
            raise GulpError(failures)

        return stubfs.sync(dry_run=dry_run)
