"""
Context model: typed value trees, coercion, layered merging and snapshots.

``coerce.coerce`` and ``merge.merge`` are reached through their modules;
re-exporting them here would hide the submodules of the same name.
"""

from contemplate.context.merge import LayeredContext
from contemplate.context.snapshot import ContextSnapshot
from contemplate.context.values import FrozenMapping, FrozenSequence, freeze, normalize, thaw

__all__ = [
    "ContextSnapshot",
    "FrozenMapping",
    "FrozenSequence",
    "LayeredContext",
    "freeze",
    "normalize",
    "thaw",
]
