"""
Context snapshots: the collected layers of one render cycle.

A snapshot is built once per cycle from freshly collected source values and
replaced wholesale on the next cycle. It is never updated in place.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import datetime as _datetime
import typing as _typing

import contemplate.context.merge as merge
import contemplate.context.values as values

if _typing.TYPE_CHECKING:
    import contemplate.datasource.spec as spec


@_dataclasses.dataclass(frozen=True)
class ContextSnapshot:
    """
    Ordered source layers plus their merged context.

    Attributes:
        layers: (source spec, collected value) pairs in declaration order.
        merged: Read-only merged context.
        created_at: When the snapshot was built.
    """

    layers: tuple[tuple[spec.DataSourceSpec, values.FrozenMapping], ...]
    merged: values.FrozenMapping
    created_at: _datetime.datetime
    _context: merge.LayeredContext = _dataclasses.field(repr=False, compare=False)

    @classmethod
    def build(
        cls,
        layers: _typing.Sequence[tuple[spec.DataSourceSpec, dict[str, _typing.Any]]],
    ) -> ContextSnapshot:
        """Merge collected layers (in declaration order) into a snapshot."""
        frozen = tuple((source, values.FrozenMapping(value)) for source, value in layers)
        context = merge.LayeredContext(
            *(value for _, value in layers),
            track_provenance=True,
        )
        return cls(
            layers=frozen,
            merged=values.FrozenMapping(context.to_dict()),
            created_at=_datetime.datetime.now(_datetime.timezone.utc),
            _context=context,
        )

    def to_template_context(self) -> dict[str, _typing.Any]:
        """Plain deep copy of the merged context for template evaluation."""
        return values.thaw(self.merged)

    def describe(self) -> _typing.Iterator[tuple[str, str]]:
        """Yield (dotted key, source label) for every leaf of the merged context."""
        for path, index in self._context.iter_provenance():
            yield ".".join(path), self.layers[index][0].label
