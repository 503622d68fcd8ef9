"""
Utilities specific to CLI functionality.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Coroutine, TypeVar

from click import Parameter
from rich.console import Console
from rich.logging import RichHandler
from typer import Context, Exit, Typer

from ...core import ApiError

if TYPE_CHECKING:
    from .main import RootContext

T = TypeVar("T")

console = Console()

rich_handler = RichHandler(
    console=console,
    rich_tracebacks=True,
    show_level=True,
    show_time=True,
    show_path=False,
)
rich_handler.setFormatter(logging.Formatter("%(message)s"))

logger = logging.getLogger("sf-gulp")
logger.setLevel(logging.INFO)
logger.addHandler(rich_handler)
logger.propagate = False


class MainTyper(Typer):
    """
    Typer app with preconfigured settings.
    """

    def __init__(self, name: str, *, help: str):
        return super().__init__(
            name=name,
            help=help,
            rich_markup_mode="markdown",
            no_args_is_help=True,
            add_completion=False,
        )


def get_root_context(ctx: Context) -> RootContext:
    from .main import RootContext

    root_context = ctx.obj
    assert isinstance(root_context, RootContext)
    return root_context


def lookup_param(ctx: Context, name: str) -> Parameter:
    """
    Lookup param by name.
    """
    param = next((p for p in ctx.command.params if p.name == name), None)
    assert param, f"Could not find param with name: {name}"
    return param


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run coroutine to completion, exiting with an error code if the org
    rejected a request.
    """
    try:
        return asyncio.run(coro)
    except ApiError as e:
        logger.error(f"Request failed: {e}")
        raise Exit(code=1)
