"""
File data source.

The file format is chosen by extension: ``.json``, ``.toml``, ``.yaml`` or
``.yml``. The top level must be a mapping; an empty YAML file is an empty
mapping.

Watching uses a watchdog observer on the file's directory, so editors that
replace files atomically and the kubelet's ``..data`` symlink swap on
mounted ConfigMaps are both seen.
"""

from __future__ import annotations

import json as _json
import logging as _logging
import pathlib as _pathlib
import tomllib as _tomllib
import typing as _typing

import watchdog.events as _watchdog_events
import watchdog.observers as _watchdog_observers
import yaml as _yaml

import contemplate.constants as _constants
import contemplate.context.values as values
import contemplate.datasource.base as base
import contemplate.datasource.spec as spec
import contemplate.errors as errors

_logger = _logging.getLogger(__name__)

_RELEVANT_EVENTS = (
    _watchdog_events.EVENT_TYPE_CREATED,
    _watchdog_events.EVENT_TYPE_MODIFIED,
    _watchdog_events.EVENT_TYPE_DELETED,
    _watchdog_events.EVENT_TYPE_MOVED,
)


class FileSource(base.DataSource):
    """Collects a JSON, TOML or YAML file."""

    def __init__(self, source_spec: spec.DataSourceSpec) -> None:
        super().__init__(source_spec)
        self._path = _pathlib.Path(_typing.cast(str, source_spec.argument))
        self._observer: _watchdog_observers.Observer | None = None

    @property
    def path(self) -> _pathlib.Path:
        return self._path

    @property
    def supports_watch(self) -> bool:
        return True

    def collect(self) -> dict[str, _typing.Any]:
        file_format = _constants.FILE_FORMATS.get(self._path.suffix.lower())
        if file_format is None:
            reason = (
                f"unknown file extension {self._path.suffix!r}"
                if self._path.suffix
                else "cannot determine file type without an extension"
            )
            raise errors.SourceError(self.label, errors.SourceErrorKind.PARSE, reason)

        try:
            content = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise errors.SourceError(self.label, errors.SourceErrorKind.NOT_FOUND, str(e)) from e
        except PermissionError as e:
            raise errors.SourceError(self.label, errors.SourceErrorKind.AUTH, str(e)) from e
        except (OSError, UnicodeDecodeError) as e:
            raise errors.SourceError(
                self.label, errors.SourceErrorKind.PARSE, f"cannot read file: {e}"
            ) from e

        try:
            parsed = _parse(content, file_format)
        except (_json.JSONDecodeError, _tomllib.TOMLDecodeError, _yaml.YAMLError) as e:
            raise errors.SourceError(
                self.label, errors.SourceErrorKind.PARSE, f"invalid {file_format.upper()}: {e}"
            ) from e

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise errors.SourceError(
                self.label,
                errors.SourceErrorKind.PARSE,
                f"top level must be a mapping, got {type(parsed).__name__}",
            )
        try:
            return values.normalize(parsed)
        except TypeError as e:
            raise errors.SourceError(self.label, errors.SourceErrorKind.PARSE, str(e)) from e

    def watch(self, notifier: base.Notifier) -> None:
        directory = self._path.absolute().parent
        handler = _FileChangeHandler(self._path.absolute(), self.label, notifier)
        observer = _watchdog_observers.Observer()
        observer.daemon = True
        observer.schedule(handler, path=str(directory), recursive=False)
        observer.start()
        self._observer = observer
        _logger.debug("Watching %s for changes", directory)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None


def _parse(content: str, file_format: str) -> _typing.Any:
    if file_format == "json":
        return _json.loads(content)
    if file_format == "toml":
        return _tomllib.loads(content)
    return _yaml.safe_load(content)


class _FileChangeHandler(_watchdog_events.FileSystemEventHandler):
    """Forwards events touching one file (or a kubelet data swap) to a notifier."""

    def __init__(self, path: _pathlib.Path, label: str, notifier: base.Notifier) -> None:
        super().__init__()
        self._path = path
        self._label = label
        self._notifier = notifier

    def on_any_event(self, event: _watchdog_events.FileSystemEvent) -> None:
        if event.event_type not in _RELEVANT_EVENTS:
            return
        paths = (event.src_path, getattr(event, "dest_path", ""))
        names = {_as_path(path).name for path in paths if path}
        # kubelet's atomic writer replaces the ..data symlink on update
        if self._path.name in names or "..data" in names:
            self._notifier.notify(self._label)


def _as_str(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


def _as_path(path: str | bytes) -> _pathlib.Path:
    return _pathlib.Path(_as_str(path))
