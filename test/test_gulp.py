import asyncio
from pathlib import Path

from pytest import raises

from sf_gulp import STORE_PATH, ApiError, Gulp, GulpError, PackageNamespace

from .conftest import FakeConnection


def setup_org(connection: FakeConnection):
    connection.records["ApexClass"] = [
        {"Name": "A", "NamespacePrefix": None, "Body": "class A {}"},
        {"Name": "B", "NamespacePrefix": "pkg", "Body": "class B {}"},
    ]
    connection.records["FlowDefinition"] = [
        {"DeveloperName": "Onboarding", "NamespacePrefix": None},
    ]


def test_update(connection: FakeConnection, workspace: Path):
    setup_org(connection)
    root = workspace / STORE_PATH

    # file from a previous run which no longer exists upstream
    stale_file = root / "unmanaged" / "classes" / "Old.cls"
    stale_file.parent.mkdir(parents=True)
    stale_file.write_text("class Old {}")

    stats = asyncio.run(Gulp(connection).update(workspace, ["pkg"]))

    assert (stats.file_count, stats.write_count, stats.delete_count) == (
        3,
        3,
        1,
    )
    assert (root / "unmanaged" / "classes" / "A.cls").read_text() == "class A {}"
    assert (root / "pkg" / "classes" / "B.cls").read_text() == "class B {}"
    assert (root / "unmanaged" / "flows" / "Onboarding.flow").read_text() == ""
    assert not stale_file.exists()

    # repeated run doesn't write anything
    stats = asyncio.run(Gulp(connection).update(workspace, ["pkg"]))
    assert (stats.file_count, stats.write_count, stats.delete_count) == (
        3,
        0,
        0,
    )


def test_update_failure(connection: FakeConnection, workspace: Path):
    setup_org(connection)
    connection.failures["ApexPage"] = ApiError("INVALID_TYPE: bad", 400)
    connection.failures["ExternalString"] = ApiError("INVALID_FIELD: bad", 400)

    existing_file = workspace / STORE_PATH / "unmanaged" / "classes" / "Old.cls"
    existing_file.parent.mkdir(parents=True)
    existing_file.write_text("class Old {}")

    with raises(GulpError) as e:
        asyncio.run(Gulp(connection).update(workspace, ["pkg"]))

    assert sorted(f.reader for f in e.value.failures) == [
        "LabelReader",
        "PageReader",
    ]
    assert "2 reader(s) failed" in str(e.value)

    # mirror is untouched
    assert existing_file.read_text() == "class Old {}"
    assert not (existing_file.parent / "A.cls").exists()


def test_update_org_namespace(connection: FakeConnection, workspace: Path):
    connection.records["Organization"] = [{"NamespacePrefix": "home"}]

    asyncio.run(Gulp(connection).update(workspace, ["home", "pkg"]))

    # org namespace isn't treated as an installed package
    assert (
        connection.get_where("ExternalString")
        == "NamespacePrefix = null OR NamespacePrefix = 'home' OR (NamespacePrefix = 'pkg' AND IsProtected = false)"
    )


def test_update_dry_run(connection: FakeConnection, workspace: Path):
    setup_org(connection)

    stats = asyncio.run(
        Gulp(connection).update(workspace, ["pkg"], dry_run=True)
    )

    assert stats.write_count == 3
    assert not (workspace / STORE_PATH).exists()


def test_org_namespace(connection: FakeConnection):
    gulp = Gulp(connection)

    assert asyncio.run(gulp.get_org_namespace()) is None

    connection.records["Organization"] = [{"NamespacePrefix": None}]
    assert asyncio.run(gulp.get_org_namespace()) is None

    connection.records["Organization"] = [{"NamespacePrefix": "home"}]
    assert asyncio.run(gulp.get_org_namespace()) == "home"

    connection.records["Organization"] = [
        {"NamespacePrefix": "home"},
        {"NamespacePrefix": "away"},
    ]
    assert asyncio.run(gulp.get_org_namespace()) is None


def test_org_packages(connection: FakeConnection):
    connection.records["InstalledSubscriberPackage"] = [
        {"SubscriberPackage": {"NamespacePrefix": "zeta", "Name": "Zeta"}},
        {
            "SubscriberPackage": {
                "NamespacePrefix": "alpha",
                "Name": "Alpha",
                "Description": "First",
            }
        },
        {"SubscriberPackage": {"NamespacePrefix": None, "Name": "Unmanaged"}},
    ]

    packages = asyncio.run(Gulp(connection).get_org_packages())

    assert packages == [
        PackageNamespace(namespace="alpha", name="Alpha", description="First"),
        PackageNamespace(namespace="zeta", name="Zeta"),
    ]


def test_update_failure_new(connection: FakeConnection, workspace: Path):
    connection.failures["ApexClass"] = ApiError("INVALID_TYPE: bad", 400)

    with raises(GulpError):
        asyncio.run(Gulp(connection).update(workspace))

    # no mirror folder left behind
    assert list(workspace.iterdir()) == []
