from pathlib import Path

from pydantic import ValidationError
from pytest import raises

from sf_gulp import Session
from sf_gulp.tools.config import Config, OrgConfig

CONFIG = """\
orgs:
  dev:
    instance_url: https://dev.my.salesforce.com/
    access_token: token
    api_version: 59
    namespaces:
      - pkg2
      - pkg1
      - pkg2
  prod:
    instance_url: https://prod.my.salesforce.com
    access_token: token
"""


def test_load(tmp_path: Path):
    config_file = tmp_path / "sf-gulp.yaml"
    config_file.write_text(CONFIG)

    config = Config.load_yaml(config_file)

    dev = config.orgs["dev"]
    assert dev.instance_url == "https://dev.my.salesforce.com"
    assert dev.api_version == "59.0"
    assert dev.namespaces == ["pkg1", "pkg2"]

    prod = config.orgs["prod"]
    assert prod.api_version == "58.0"
    assert prod.namespaces == []

    # dumped config is loaded unchanged
    dump_file = tmp_path / "dump.yaml"
    config.dump_yaml(dump_file)
    assert Config.load_yaml(dump_file) == config


def test_load_invalid(tmp_path: Path):
    config_file = tmp_path / "sf-gulp.yaml"

    config_file.write_text("- not a mapping\n")
    with raises(ValueError, match="Expected a mapping"):
        Config.load_yaml(config_file)

    config_file.write_text(CONFIG.replace("https://prod", "prod"))
    with raises(ValidationError):
        Config.load_yaml(config_file)


def test_api_version():
    org = OrgConfig(
        instance_url="https://dev.my.salesforce.com",
        access_token="token",
        api_version="60.0",
    )
    assert org.api_version == "60.0"

    with raises(ValidationError):
        OrgConfig(
            instance_url="https://dev.my.salesforce.com",
            access_token="token",
            api_version="v60",
        )


def test_create_session():
    org = OrgConfig(
        instance_url="https://dev.my.salesforce.com",
        access_token="token",
        api_version="57.0",
    )

    session = org.create_session(logger=None)

    assert isinstance(session, Session)
    assert session.instance_url == "https://dev.my.salesforce.com"
    assert session.api_version == "57.0"
