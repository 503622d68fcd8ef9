"""
Write-back cache over the mirror folder.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from logging import Logger
from pathlib import Path

from .utils import walk_files

__all__ = [
    "StubFS",
    "SyncStats",
    "STORE_PATH",
]

STORE_PATH = Path(".apexlink") / "gulp"
"""
Location of the mirror relative to the workspace.
"""


@dataclass(kw_only=True)
class SyncStats:
    """
    Encapsulates statistics for sync operation.
    """

    file_count: int = 0
    """
    Number of files staged.
    """

    write_count: int = 0
    """
    Number of files which were actually written.
    """

    delete_count: int = 0
    """
    Number of stale files which were deleted.
    """


class StubFS:
    """
    Collects file contents staged by readers and reconciles them with the
    mirror folder in a single pass.

    The set of existing files is captured upon construction; any of them which
    are not staged by the time {obj}`StubFS.sync` is invoked are deleted.
    The mirror folder is only created once files are synced.
    """

    root: Path
    """
    Mirror folder.
    """

    _snapshot: set[Path]
    """
    Files under root when this store was created.
    """

    _staged: dict[str, str]
    """
    Mapping of relative path to contents.
    """

    _logger: Logger

    def __init__(self, workspace: Path, *, logger: Logger | None = None):
        self._logger = logger or logging.getLogger()
        self.root = workspace / STORE_PATH
        self._snapshot = set(walk_files(self.root))
        self._staged = dict()

    def __str__(self):
        return f"StubFS: root='{self.root}', staged={len(self._staged)}"

    @property
    def staged(self) -> dict[str, str]:
        """
        Copy of the files currently staged.
        """
        return dict(self._staged)

    def stage(self, path: str | Path, contents: str):
        """
        Stage contents for a path relative to the mirror root, replacing any
        contents previously staged for it.
        """
        self._staged[Path(path).as_posix()] = contents

    def sync(self, *, dry_run: bool = False) -> SyncStats:
        """
        Write staged files which are missing or out of date, delete files
        which weren't staged and clear staged files.
        """
        stats = SyncStats(file_count=len(self._staged))
        stale: set[Path] = set(self._snapshot)

        for rel_path, contents in self._staged.items():
            path = self.root / rel_path
            data = contents.encode(encoding="utf-8")

            # skip files whose contents are unchanged
            if not path.is_file() or path.read_bytes() != data:
                if dry_run:
                    self._logger.info(f"Would write '{path}'")
                else:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_bytes(data)
                stats.write_count += 1

            stale.discard(path)

        # delete files not produced by this run (presumed removed upstream)
        for path in sorted(stale):
            if dry_run:
                self._logger.info(f"Would delete '{path}'")
            else:
                self._prune_file(path)
            stats.delete_count += 1

        if not dry_run:
            self.root.mkdir(parents=True, exist_ok=True)
            self._snapshot = set(walk_files(self.root))
            self._staged.clear()

        return stats

    def _prune_file(self, path: Path):
        """
        Remove this file and any parent folders left empty.
        """
        assert path.is_relative_to(self.root)

        if path.exists():
            path.unlink()

        parent = path.parent
        while parent != self.root and next(parent.iterdir(), None) is None:
            parent.rmdir()
            parent = parent.parent

