import asyncio
import xml.etree.ElementTree as ET

from sf_gulp import (
    LABELS_FILENAME,
    ApiError,
    ArtifactRecord,
    ClassReader,
    ComponentReader,
    FlowReader,
    LabelReader,
    PageReader,
    StubFS,
    group_by_namespace,
)

from ..conftest import FakeConnection

NS = "{http://soap.sforce.com/2006/04/metadata}"


def test_classes(connection: FakeConnection, stubfs: StubFS):
    connection.records["ApexClass"] = [
        {"Name": "A", "NamespacePrefix": None, "Body": "class A {}"},
        {"Name": "B", "NamespacePrefix": "pkg", "Body": "(hidden)"},
        {"Name": "C", "NamespacePrefix": "pkg", "Body": "class C {}"},
        {"Name": "D", "NamespacePrefix": "other", "Body": "class D {}"},
    ]

    reader = ClassReader(connection, None, ["pkg"], stubfs)
    assert asyncio.run(reader.run()) is None

    # hidden and unrequested namespaces are excluded
    assert stubfs.staged == {
        "unmanaged/classes/A.cls": "class A {}",
        "pkg/classes/C.cls": "class C {}",
    }

    assert (
        connection.get_where("ApexClass")
        == "Status = 'Active' AND (NamespacePrefix = null OR NamespacePrefix = 'pkg')"
    )


def test_org_namespace(connection: FakeConnection, stubfs: StubFS):
    connection.records["ApexClass"] = [
        {"Name": "A", "NamespacePrefix": "home", "Body": "class A {}"},
    ]

    # org namespace is always read and not duplicated
    reader = ClassReader(connection, "home", ["pkg", "home"], stubfs)
    assert asyncio.run(reader.run()) is None

    assert stubfs.staged == {"home/classes/A.cls": "class A {}"}
    assert (
        connection.get_where("ApexClass")
        == "Status = 'Active' AND (NamespacePrefix = null OR NamespacePrefix = 'home' OR NamespacePrefix = 'pkg')"
    )


def test_pages_components(connection: FakeConnection, stubfs: StubFS):
    connection.records["ApexPage"] = [
        {"Name": "Home", "NamespacePrefix": None, "Markup": "<apex:page/>"},
    ]
    connection.records["ApexComponent"] = [
        {
            "Name": "Header",
            "NamespacePrefix": "pkg",
            "Markup": "<apex:component/>",
        },
    ]

    for reader_cls in [PageReader, ComponentReader]:
        reader = reader_cls(connection, None, ["pkg"], stubfs)
        assert asyncio.run(reader.run()) is None

    assert stubfs.staged == {
        "unmanaged/pages/Home.page": "<apex:page/>",
        "pkg/components/Header.component": "<apex:component/>",
    }


def test_flows(connection: FakeConnection, stubfs: StubFS):
    connection.records["FlowDefinition"] = [
        {"DeveloperName": "Onboarding", "NamespacePrefix": None},
        {"DeveloperName": "Renewal", "NamespacePrefix": "pkg"},
    ]

    reader = FlowReader(connection, None, ["pkg"], stubfs)
    assert asyncio.run(reader.run()) is None

    assert stubfs.staged == {
        "unmanaged/flows/Onboarding.flow": "",
        "pkg/flows/Renewal.flow": "",
    }


def test_labels(connection: FakeConnection, stubfs: StubFS):
    connection.records["ExternalString"] = [
        {"Name": "Welcome", "NamespacePrefix": "pkg"},
        {"Name": "Goodbye", "NamespacePrefix": "pkg"},
        {"Name": "Greeting", "NamespacePrefix": None},
    ]

    reader = LabelReader(connection, None, ["pkg"], stubfs)
    assert asyncio.run(reader.run()) is None

    assert set(stubfs.staged.keys()) == {
        f"unmanaged/{LABELS_FILENAME}",
        f"pkg/{LABELS_FILENAME}",
    }

    root = ET.fromstring(stubfs.staged[f"pkg/{LABELS_FILENAME}"])
    assert root.tag == f"{NS}CustomLabels"
    assert [e.findtext(f"{NS}fullName") for e in root] == [
        "Goodbye",
        "Welcome",
    ]
    assert root[0].findtext(f"{NS}protected") == "false"

    # protected labels of installed packages are excluded
    assert (
        connection.get_where("ExternalString")
        == "NamespacePrefix = null OR (NamespacePrefix = 'pkg' AND IsProtected = false)"
    )


def test_failure(connection: FakeConnection, stubfs: StubFS):
    connection.failures["ApexPage"] = ApiError("INVALID_TYPE: bad", 400)

    reader = PageReader(connection, None, [], stubfs)
    failure = asyncio.run(reader.run())

    assert failure is not None
    assert failure.reader == "PageReader"
    assert "INVALID_TYPE: bad" in failure.message
    assert "ApiError" in failure.stack
    assert stubfs.staged == {}


def test_group_by_namespace():
    records = [
        ArtifactRecord.model_validate(r)
        for r in [
            {"Name": "B", "NamespacePrefix": "pkg"},
            {"Name": "A", "NamespacePrefix": None},
            {"Name": "A", "NamespacePrefix": "pkg"},
        ]
    ]

    groups = group_by_namespace(records)

    assert list(groups.keys()) == ["pkg", "unmanaged"]
    assert [r.name for r in groups["pkg"]] == ["B", "A"]
    assert [r.name for r in groups["unmanaged"]] == ["A"]
