"""
Readers for each kind of artifact mirrored from the org.
"""

from pyrollup import rollup

from . import base, classes, components, flows, labels, pages, sobjects
from .base import *  # noqa
from .classes import *  # noqa
from .components import *  # noqa
from .flows import *  # noqa
from .labels import *  # noqa
from .pages import *  # noqa
from .sobjects import *  # noqa

__all__ = rollup(
    base,
    classes,
    components,
    flows,
    labels,
    pages,
    sobjects,
)
__canonical_children__ = [
    "base",
    "classes",
    "components",
    "flows",
    "labels",
    "pages",
    "sobjects",
]
