"""
Common utilities.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Iterator

__all__ = [
    "METADATA_NS",
    "walk_files",
    "gather_tasks",
]

METADATA_NS = "http://soap.sforce.com/2006/04/metadata"
"""
XML namespace of Metadata API documents and messages.
"""


def walk_files(root: Path) -> Iterator[Path]:
    """
    Yield all files under root, depth first. Yields nothing if root doesn't
    exist.
    """
    stack: list[Path] = [root] if root.is_dir() else []

    while stack:
        folder = stack.pop()
        for path in sorted(folder.iterdir()):
            if path.is_dir():
                stack.append(path)
            else:
                yield path


async def gather_tasks(*aws: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently and return their results in order.

    Upon the first failure the remaining tasks are cancelled and awaited
    before the failure is raised, so no task outlives this call.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not len(tasks):
        return []

    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    for task in tasks:
        if task.cancelled():
            continue
        exc = task.exception()
        if exc is not None:
            raise exc

    return [task.result() for task in tasks]
