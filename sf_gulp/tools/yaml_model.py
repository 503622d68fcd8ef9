"""
Pydantic models persisted as .yaml files.
"""

from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel

__all__ = [
    "BaseYamlModel",
]


class BaseYamlModel(BaseModel):
    """
    Base pydantic model which can be loaded from and dumped to a .yaml file.
    """

    @classmethod
    def load_yaml(cls, file: Path) -> Self:
        """
        Load model from .yaml file.

        :raises ValueError: If the file doesn't contain a mapping
        """
        assert file.is_file()

        with file.open(encoding="utf-8") as fh:
            data = yaml.safe_load(fh)

        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in '{file}', got: {data}")

        return cls.model_validate(data)

    def dump_yaml(self, file: Path):
        """
        Dump model to .yaml file, omitting unset optional values.
        """
        data = self.model_dump(mode="json", exclude_none=True)
        file.write_text(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )
