"""
Environment variable data source.

With prefix ``APP``, only variables starting with ``APP_`` are used and the
prefix is stripped. Keys are lower-cased and split on ``_`` into nested
maps; values are coerced into typed values:

    APP_SERVER_PORT=8080     -> {"server": {"port": 8080}}
    APP_FEATURES=[a, b]      -> {"features": ["a", "b"]}

The process environment cannot change after launch, so this source never
supports watching.
"""

from __future__ import annotations

import collections.abc as _abc
import os as _os
import typing as _typing

import contemplate.context.coerce as coerce
import contemplate.context.merge as merge
import contemplate.context.values as values
import contemplate.datasource.base as base
import contemplate.datasource.spec as spec


class EnvironmentSource(base.DataSource):
    """Collects (optionally prefixed) environment variables."""

    def __init__(
        self,
        source_spec: spec.DataSourceSpec,
        *,
        environ: _abc.Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(source_spec)
        self._environ = environ

    @property
    def prefix(self) -> str | None:
        return self.spec.argument

    def collect(self) -> dict[str, _typing.Any]:
        environ = _os.environ if self._environ is None else self._environ
        return environ_to_tree(environ, self.prefix)


def environ_to_tree(
    environ: _abc.Mapping[str, str],
    prefix: str | None = None,
) -> dict[str, _typing.Any]:
    """
    Convert flat variables into a nested, coerced map.

    Variables are applied in sorted order, so the result does not depend on
    the iteration order of the environment. When a plain value and a nested
    map compete for one key, the map wins.
    """
    start = f"{prefix}_" if prefix else ""
    layers: list[dict[str, _typing.Any]] = []
    for name in sorted(environ):
        if not name.startswith(start):
            continue
        path = [part for part in name[len(start) :].lower().split("_") if part]
        if not path:
            continue
        layers.append(values.nest(path, coerce.coerce(environ[name])))

    # Maps sort after scalars so nested keys win over a same-named scalar.
    layers.sort(key=lambda layer: _depth(layer))
    return merge.merge(layers)


def _depth(layer: dict[str, _typing.Any]) -> int:
    depth = 0
    value: _typing.Any = layer
    while isinstance(value, dict) and len(value) == 1:
        depth += 1
        value = next(iter(value.values()))
    return depth
