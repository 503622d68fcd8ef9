"""
sf-gulp: mirror an org's metadata into a local folder tree.
"""

from pyrollup import rollup

from . import core
from .core import *  # noqa

__all__ = rollup(core)

__canonical_children__ = [
    "core",
]
