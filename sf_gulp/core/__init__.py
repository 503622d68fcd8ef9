"""
This module implements reading of org metadata and reconciliation of the
local mirror.
"""

from pyrollup import rollup

from . import (
    entity_name,
    exceptions,
    gulp,
    objectdoc,
    readers,
    session,
    stubfs,
)
from .entity_name import *  # noqa
from .exceptions import *  # noqa
from .gulp import *  # noqa
from .objectdoc import *  # noqa
from .readers import *  # noqa
from .session import *  # noqa
from .stubfs import *  # noqa

__all__ = rollup(
    gulp,
    session,
    stubfs,
    readers,
    objectdoc,
    entity_name,
    exceptions,
)

__canonical_children__ = [
    "gulp",
    "session",
    "stubfs",
    "readers",
    "objectdoc",
    "entity_name",
    "exceptions",
]
