"""
Layered merging of data source values into one context.

Layers are given in declaration order: the first layer is the lowest
priority and every later layer overrides it. Maps merge recursively key by
key; scalars and lists from a later layer replace earlier values wholesale
and are never concatenated.

Example:
    >>> defaults = {"server": {"host": "localhost", "port": 80}}
    >>> overrides = {"server": {"port": 8080}, "debug": True}
    >>> merge([defaults, overrides])
    {'server': {'host': 'localhost', 'port': 8080}, 'debug': True}

Provenance tracking records which layer supplied each leaf, so verbose
logging can explain where a context value came from.
"""

from __future__ import annotations

import collections.abc as _abc
import copy as _copy
import typing as _typing

import contemplate.context.values as values

# Nested key path, e.g. ("server", "port")
Path: _typing.TypeAlias = tuple[str, ...]

# Provenance mirrors the merged structure: {"key": layer_index, "nested": {...}}
# The special key "." holds the layer index of a non-map value.
if _typing.TYPE_CHECKING:
    Provenance: _typing.TypeAlias = dict[str, "int | Provenance"]
else:
    Provenance: _typing.TypeAlias = dict[str, object]


class LayeredContext(_abc.Mapping[str, _typing.Any]):
    """
    Read-only mapping that deep-merges its layers on lookup.

    Merged top-level values are cached; layers are stored by reference and
    never modified. Returned maps and lists are read-only views.

    Args:
        *layers: Maps in declaration order (last = highest priority).
        track_provenance: Whether to record which layer each value came from.
    """

    def __init__(
        self,
        *layers: _abc.Mapping[str, _typing.Any],
        track_provenance: bool = False,
    ) -> None:
        self._layers: list[_abc.Mapping[str, _typing.Any]] = list(layers)
        self._track_provenance = track_provenance
        self._cache: dict[str, _typing.Any] = {}
        self._provenance_cache: dict[str, Provenance] = {}

    @property
    def layers(self) -> list[values.FrozenMapping]:
        """Read-only access to the layers, in declaration order."""
        return [values.FrozenMapping(layer) for layer in self._layers]

    def __getitem__(self, key: str) -> _typing.Any:
        if key not in self._cache:
            self._populate(key)
        return values.freeze(self._cache[key])

    def __iter__(self) -> _typing.Iterator[str]:
        seen: set[str] = set()
        for layer in self._layers:
            for key in layer:
                if key not in seen:
                    seen.add(key)
                    yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, key: object) -> bool:
        return any(key in layer for layer in self._layers)

    def __repr__(self) -> str:
        return f"LayeredContext({', '.join(repr(layer) for layer in self._layers)})"

    def get_with_provenance(self, key: str) -> tuple[_typing.Any, Provenance]:
        """
        Get a merged value along with the layer index each part came from.

        Raises:
            KeyError: If no layer contains the key.
            RuntimeError: If provenance tracking was not enabled.
        """
        if not self._track_provenance:
            raise RuntimeError(
                "Provenance tracking not enabled. "
                "Create LayeredContext with track_provenance=True."
            )
        value = self[key]
        return value, self._provenance_cache.get(key, {})

    def iter_provenance(self) -> _typing.Iterator[tuple[Path, int]]:
        """Yield (leaf path, layer index) for every leaf of the merged tree."""
        for key in self:
            _, provenance = self.get_with_provenance(key)
            yield from _walk_provenance((key,), provenance)

    def to_dict(self) -> dict[str, _typing.Any]:
        """Return the fully merged context as a plain, independent dict."""
        result: dict[str, _typing.Any] = {}
        for key in self:
            if key not in self._cache:
                self._populate(key)
            result[key] = _copy.deepcopy(self._cache[key])
        return result

    def _populate(self, key: str) -> None:
        found = [(index, layer[key]) for index, layer in enumerate(self._layers) if key in layer]
        if not found:
            raise KeyError(key)

        result = values.thaw(found[0][1])
        provenance = _build_provenance(result, found[0][0])
        for index, value in found[1:]:
            result, provenance = _merge_value(result, value, provenance, index)

        self._cache[key] = result
        if self._track_provenance:
            self._provenance_cache[key] = provenance


def _merge_value(
    base: _typing.Any,
    override: _typing.Any,
    provenance: Provenance,
    layer_index: int,
) -> tuple[_typing.Any, Provenance]:
    """Merge a higher-priority value into base; maps recurse, all else replaces."""
    if isinstance(base, dict) and isinstance(override, _abc.Mapping):
        result = dict(base)
        merged_provenance = dict(provenance)
        for key, value in override.items():
            if isinstance(result.get(key), dict) and isinstance(value, _abc.Mapping):
                nested = provenance.get(key)
                if not isinstance(nested, dict):
                    # The whole subtree came from one layer so far.
                    nested = _build_provenance(result[key], _typing.cast(int, nested))
                result[key], merged_provenance[key] = _merge_value(
                    result[key],
                    value,
                    nested,
                    layer_index,
                )
            else:
                result[key] = values.thaw(value)
                merged_provenance[key] = layer_index
        return result, merged_provenance

    return values.thaw(override), _build_provenance(override, layer_index)


def _build_provenance(value: _typing.Any, layer_index: int) -> Provenance:
    if isinstance(value, _abc.Mapping):
        return dict.fromkeys(value, layer_index)
    return {".": layer_index}


def _walk_provenance(
    path: Path,
    provenance: Provenance,
) -> _typing.Iterator[tuple[Path, int]]:
    for key, entry in provenance.items():
        if key == ".":
            yield path, _typing.cast(int, entry)
        elif isinstance(entry, dict):
            yield from _walk_provenance(path + (key,), entry)
        else:
            yield path + (key,), _typing.cast(int, entry)


def merge(layers: _abc.Sequence[_abc.Mapping[str, _typing.Any]]) -> dict[str, _typing.Any]:
    """
    Merge maps in declaration order into a single plain dict.

    Pure and deterministic; the inputs are not modified. Merging is
    associative from the left: ``merge([a, b, c]) == merge([merge([a, b]), c])``.
    """
    return LayeredContext(*layers).to_dict()
