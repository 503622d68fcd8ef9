import io
import logging
import re
import zipfile
from pathlib import Path
from typing import Any, Iterable

from pytest import fixture

from sf_gulp import StubFS

logging.basicConfig(level=logging.WARNING)

OBJECT_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<CustomObject xmlns="http://soap.sforce.com/2006/04/metadata">
{fields}    <label>{label}</label>
</CustomObject>
"""

FIELD_TEMPLATE = """\
    <fields>
        <fullName>{name}</fullName>
        <type>Text</type>
    </fields>
"""


def create_object(label: str, fields: Iterable[str] = ()) -> str:
    """
    Create object definition with the given field names.
    """
    return OBJECT_TEMPLATE.format(
        label=label,
        fields="".join(FIELD_TEMPLATE.format(name=f) for f in fields),
    )


class FakeConnection:
    """
    In-memory org which records requests made to it.

    Queries only honor namespace and publisher conditions in the filter;
    other conditions are ignored.
    """

    instance_url = "https://example.my.salesforce.com"
    api_version = "58.0"

    records: dict[str, list[dict[str, Any]]]
    """
    Records returned by queries, keyed by record type.
    """

    objects: dict[str, str]
    """
    Object definitions returned by retrieves, keyed by full name.
    """

    descriptions: dict[str, dict[str, Any]]

    failures: dict[str, Exception]
    """
    Exceptions raised by queries, keyed by record type.
    """

    queries: list[tuple[str, str | None]]
    retrieves: list[tuple[str, list[str]]]

    def __init__(self):
        self.records = dict()
        self.objects = dict()
        self.descriptions = dict()
        self.failures = dict()
        self.queries = []
        self.retrieves = []

    async def query(
        self,
        sobject: str,
        fields: Iterable[str],
        where: str | None = None,
        *,
        tooling: bool = True,
    ) -> list[dict[str, Any]]:
        self.queries.append((sobject, where))

        if sobject in self.failures:
            raise self.failures[sobject]

        return [
            r for r in self.records.get(sobject, []) if _matches(r, where)
        ]

    async def retrieve(
        self, metadata_type: str, members: Iterable[str]
    ) -> bytes:
        members = list(members)
        self.retrieves.append((metadata_type, members))

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zip_file:
            zip_file.writestr("unpackaged/package.xml", "<Package/>")
            for member in members:
                if member in self.objects:
                    zip_file.writestr(
                        f"unpackaged/objects/{member}.object",
                        self.objects[member],
                    )

        return buffer.getvalue()

    async def describe_global(self) -> list[str]:
        return sorted(self.objects.keys())

    async def describe(self, sobject: str) -> dict[str, Any]:
        return self.descriptions[sobject]

    async def get_api_versions(self) -> list[str]:
        return ["57.0", "58.0"]

    def get_where(self, sobject: str) -> str | None:
        """
        Get filter of first query of the given record type.
        """
        return next(w for s, w in self.queries if s == sobject)


def _matches(record: dict[str, Any], where: str | None) -> bool:
    if where is None:
        return True

    namespaces = re.findall(r"NamespacePrefix = (null|'\w+')", where)
    publishers = re.findall(r"Publisher\.Name = '([^']*)'", where)

    if not (namespaces or publishers):
        return True

    namespace = record.get("NamespacePrefix")
    if namespace is None and "null" in namespaces:
        return True
    if namespace is not None and f"'{namespace}'" in namespaces:
        return True

    publisher = (record.get("Publisher") or {}).get("Name")
    return publisher in publishers


@fixture
def connection() -> FakeConnection:
    return FakeConnection()


@fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@fixture
def stubfs(workspace: Path) -> StubFS:
    return StubFS(workspace)
