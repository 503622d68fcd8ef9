"""
Interface to configuration as persisted in .yaml file.
"""
from __future__ import annotations

import re
from logging import Logger
from typing import Any

from pydantic import BaseModel, field_validator

from ..core import Session
from ..core.session import DEFAULT_API_VERSION
from .yaml_model import BaseYamlModel

__all__ = [
    "Config",
    "OrgConfig",
]

API_VERSION_PATTERN = re.compile(r"^\d+\.0$")


class Config(BaseYamlModel):
    """
    Encapsulates configuration for use in tools.
    """

    orgs: dict[str, OrgConfig]
    """
    Mapping of org aliases to configs.
    """


class OrgConfig(BaseModel):
    """
    Encapsulates connection info and mirror options for an org.
    """

    instance_url: str
    access_token: str
    api_version: str = DEFAULT_API_VERSION
    namespaces: list[str] = []
    """
    Installed package namespaces to mirror by default.
    """

    @field_validator("instance_url")
    def validate_instance_url(cls, value: str) -> str:
        if not value.startswith(("https://", "http://")):
            raise ValueError(f"expected http(s) url, got: '{value}'")
        return value.rstrip("/")

    @field_validator("api_version", mode="before")
    def validate_api_version(cls, value: Any) -> Any:
        # allow unquoted numbers in yaml, e.g. 58.0
        if isinstance(value, (int, float)):
            value = f"{float(value):.1f}"

        if isinstance(value, str) and not API_VERSION_PATTERN.match(value):
            raise ValueError(f"expected version like '58.0', got: '{value}'")

        return value

    @field_validator("namespaces")
    def validate_namespaces(cls, value: list[str]) -> list[str]:
        return sorted(set(value))

    def create_session(self, *, logger: Logger | None = None) -> Session:
        """
        Get session from this org's fields.
        """
        return Session(
            self.instance_url,
            self.access_token,
            api_version=self.api_version,
            logger=logger,
        )
