"""
Reader for custom objects and their fields.
"""
from __future__ import annotations

import io
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Any

from ..entity_name import OBJECT_TYPES, ArtifactType, EntityName
from ..objectdoc import ObjectAttributes, ObjectDocument, map_sharing_model
from ..utils import gather_tasks, walk_files
from .base import UNMANAGED, MetadataReader

__all__ = [
    "SObjectReader",
]

LOCAL_PUBLISHER = "<local>"
"""
Publisher name of objects created in the org itself.
"""

OBJECT_EXTENSION = ".object"

FIELD_EXTENSION = ".field-meta.xml"


class SObjectReader(MetadataReader):
    """
    Stages object definitions retrieved with the Metadata API, moving fields
    owned by other namespaces into their owning namespace's folder.

    Each namespace is read independently:

    1. Query names of objects in the namespace
    2. Retrieve their definitions, while querying attributes which the
    definitions may be missing
    3. Split and stage definitions
    """

    async def _read(self):
        partitions: list[str | None] = [None] + self._namespaces
        await gather_tasks(*(self._read_namespace(ns) for ns in partitions))

    async def _read_namespace(self, namespace: str | None):
        """
        Read objects of an installed package namespace, or local objects if
        `None`.
        """
        where = (
            f"Publisher.Name = '{LOCAL_PUBLISHER}'"
            if namespace is None
            else f"NamespacePrefix = '{namespace}'"
        )

        names = await self._query_names(where)
        if not len(names):
            self._logger.debug(f"No objects found for {where}")
            return

        archive, attributes = await gather_tasks(
            self._connection.retrieve(
                "CustomObject", [n.full_name() for n in names]
            ),
            self._query_attributes(where),
        )

        documents = _read_archive(archive)
        known = {n.full_name(): n for n in names}

        for full_name, contents in documents.items():
            name = known.get(full_name) or EntityName.parse(
                full_name, OBJECT_TYPES
            )
            if name is None:
                self._logger.warning(
                    f"Ignoring unexpected object in retrieved archive: {full_name}"
                )
                continue

            self._stage_object(
                ObjectDocument(name, contents), attributes.get(full_name)
            )

        self._logger.debug(f"Staged {len(documents)} objects for {where}")

    async def _query_names(self, where: str) -> list[EntityName]:
        records = await self._connection.query(
            "EntityDefinition", ["QualifiedApiName"], where
        )

        names: list[EntityName] = []
        for record in records:
            name = EntityName.parse(record["QualifiedApiName"], OBJECT_TYPES)
            if name is not None:
                names.append(name)

        return names

    async def _query_attributes(
        self, where: str
    ) -> dict[str, ObjectAttributes]:
        """
        Get sharing models and custom setting types of custom objects.
        """
        records, visible = await gather_tasks(
            self._connection.query(
                "EntityDefinition",
                [
                    "QualifiedApiName",
                    "InternalSharingModel",
                    "ExternalSharingModel",
                    "IsCustomSetting",
                ],
                where,
            ),
            self._connection.describe_global(),
        )

        records = [
            r
            for r in records
            if _is_custom_object(r.get("QualifiedApiName"))
        ]

        # custom setting type depends on whether Name field is nullable
        visible_names = set(visible)
        settings = [
            r["QualifiedApiName"]
            for r in records
            if r.get("IsCustomSetting") and r["QualifiedApiName"] in visible_names
        ]
        descriptions = await gather_tasks(
            *(self._connection.describe(name) for name in settings)
        )
        settings_types = {
            name: _get_settings_type(description)
            for name, description in zip(settings, descriptions)
        }

        return {
            r["QualifiedApiName"]: ObjectAttributes(
                sharing_model=map_sharing_model(r.get("InternalSharingModel")),
                external_sharing_model=map_sharing_model(
                    r.get("ExternalSharingModel")
                ),
                custom_settings_type=settings_types.get(r["QualifiedApiName"]),
            )
            for r in records
        }

    def _stage_object(
        self, document: ObjectDocument, attributes: ObjectAttributes | None
    ):
        """
        Stage object at `<namespace>/objects/<object>.object` and each alien
        field at `<field namespace>/objects/<object>/fields/<field>.field-meta.xml`,
        using full API names of object and field.
        """
        object_name = document.name.full_name()
        owner = document.name.namespace or self._org_namespace

        for field in document.split_fields(self._org_namespace):
            self._stubfs.stage(
                PurePosixPath(field.namespace or UNMANAGED)
                / "objects"
                / object_name
                / "fields"
                / f"{field.full_name}{FIELD_EXTENSION}",
                field.contents,
            )

        if attributes is not None:
            document.add_attributes(attributes)

        self._stubfs.stage(
            PurePosixPath(owner or UNMANAGED)
            / "objects"
            / f"{object_name}{OBJECT_EXTENSION}",
            document.render(),
        )


def _read_archive(archive: bytes) -> dict[str, str]:
    """
    Unpack retrieved archive to a temporary folder and read object
    definitions, keyed by object name.
    """
    documents: dict[str, str] = dict()

    with tempfile.TemporaryDirectory(prefix="gulp") as tmp_dir:
        with zipfile.ZipFile(io.BytesIO(archive)) as zip_file:
            zip_file.extractall(tmp_dir)

        for path in walk_files(Path(tmp_dir)):
            if path.suffix == OBJECT_EXTENSION:
                documents[path.stem] = path.read_text(encoding="utf-8")

    return documents


def _is_custom_object(api_name: Any) -> bool:
    if not isinstance(api_name, str):
        return False
    name = EntityName.parse(api_name, OBJECT_TYPES)
    return name is not None and name.artifact_type is ArtifactType.CUSTOM_OBJECT


def _get_settings_type(description: dict[str, Any]) -> str | None:
    name_field = next(
        (f for f in description.get("fields", []) if f.get("name") == "Name"),
        None,
    )
    if name_field is None:
        return None
    return "Hierarchy" if name_field.get("nillable") else "List"
