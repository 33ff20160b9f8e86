"""
Base class for data sources.

Every provider collects its values into a map and may optionally observe
its backing store for changes. Change notifications carry no payload: they
only tell the watch engine to collect again.
"""

from __future__ import annotations

import abc as _abc
import asyncio as _asyncio
import dataclasses as _dataclasses
import datetime as _datetime
import logging as _logging
import typing as _typing

import contemplate.datasource.spec as spec
import contemplate.errors as errors

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass(frozen=True)
class ChangeEvent:
    """A data source reported that its values may have changed."""

    source_id: str
    observed_at: _datetime.datetime


class Notifier:
    """
    Delivers change events from provider watchers to the engine's queue.

    ``notify`` may be called from any thread (watchdog observers and
    Kubernetes watch streams run on their own threads).
    """

    def __init__(
        self,
        queue: _asyncio.Queue[ChangeEvent],
        loop: _asyncio.AbstractEventLoop,
    ) -> None:
        self._queue = queue
        self._loop = loop

    def notify(self, source_id: str) -> None:
        """Enqueue a change event for the given source."""
        event = ChangeEvent(
            source_id=source_id,
            observed_at=_datetime.datetime.now(_datetime.timezone.utc),
        )
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Event loop already closed during shutdown
            _logger.debug("Dropping change event from %s after shutdown", source_id)
            return
        _logger.info("Reload triggered by %s", source_id)


class DataSource(_abc.ABC):
    """
    Abstract base class for data sources.

    The set of providers is closed: file, environment, Kubernetes ConfigMap
    and Kubernetes Secret, created through ``create_source``.
    """

    def __init__(self, source_spec: spec.DataSourceSpec) -> None:
        self._spec = source_spec

    @property
    def spec(self) -> spec.DataSourceSpec:
        """The declaration this source was created from."""
        return self._spec

    @property
    def label(self) -> str:
        """Display name used in logs and errors."""
        return self._spec.label

    @property
    def supports_watch(self) -> bool:
        """Whether ``watch`` can observe changes."""
        return False

    @_abc.abstractmethod
    def collect(self) -> dict[str, _typing.Any]:
        """
        Read the source into a map.

        Blocking; the watch engine calls it from a worker thread.

        Raises:
            SourceError: If the source cannot be read, parsed or reached.
        """
        ...

    def watch(self, notifier: Notifier) -> None:
        """
        Start observing the source, calling ``notifier.notify`` on changes.

        Returns once the subscription is in place.

        Raises:
            WatchUnsupportedError: If the source cannot observe changes.
        """
        raise errors.WatchUnsupportedError(self.label)

    def stop(self) -> None:
        """Stop observing the source. Safe to call when not watching."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label})"
