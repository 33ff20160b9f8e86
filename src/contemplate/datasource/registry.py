"""
Registry of the configured data sources.

The registry owns the providers in declaration order, collects them into
context snapshots and manages their change subscriptions.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import contemplate.context.snapshot as snapshot
import contemplate.datasource.base as base
import contemplate.datasource.env as env
import contemplate.datasource.file as file
import contemplate.datasource.k8s as k8s
import contemplate.datasource.spec as spec

_logger = _logging.getLogger(__name__)


def create_source(source_spec: spec.DataSourceSpec) -> base.DataSource:
    """
    Create the provider for a declared source.

    Args:
        source_spec: The source declaration.

    Returns:
        A provider of the matching kind.
    """
    if source_spec.kind == "file":
        return file.FileSource(source_spec)
    if source_spec.kind == "env":
        return env.EnvironmentSource(source_spec)
    if source_spec.kind == "k8s-configmap":
        return k8s.ConfigMapSource(source_spec)
    if source_spec.kind == "k8s-secret":
        return k8s.SecretSource(source_spec)
    raise ValueError(f"Unknown data source kind: {source_spec.kind}")


class SourceRegistry:
    """Ordered collection of providers."""

    def __init__(self, sources: _typing.Sequence[base.DataSource]) -> None:
        self._sources = list(sources)
        self._watching: list[base.DataSource] = []

    @classmethod
    def from_specs(cls, specs: _typing.Sequence[spec.DataSourceSpec]) -> SourceRegistry:
        """Create a registry with one provider per spec."""
        return cls([create_source(source_spec) for source_spec in specs])

    @property
    def sources(self) -> list[base.DataSource]:
        return list(self._sources)

    @property
    def watchable(self) -> list[base.DataSource]:
        """Providers that can observe changes."""
        return [source for source in self._sources if source.supports_watch]

    def collect(self) -> snapshot.ContextSnapshot:
        """
        Collect every source in declaration order and merge the results.

        Blocking.

        Raises:
            SourceError: From the first source that fails; later sources
                are not collected.
        """
        layers = []
        for source in self._sources:
            value = source.collect()
            _logger.debug("Collected %d top-level keys from %s", len(value), source.label)
            layers.append((source.spec, value))
        return snapshot.ContextSnapshot.build(layers)

    def start_watching(self, notifier: base.Notifier) -> None:
        """Subscribe every watchable source to the notifier."""
        for source in self.watchable:
            source.watch(notifier)
            self._watching.append(source)
            _logger.debug("Subscribed to changes from %s", source.label)

    def stop_watching(self) -> None:
        """Stop every active subscription."""
        while self._watching:
            source = self._watching.pop()
            source.stop()
            _logger.debug("Stopped watching %s", source.label)

    def __len__(self) -> int:
        return len(self._sources)

    def __repr__(self) -> str:
        return f"SourceRegistry({', '.join(source.label for source in self._sources)})"
