"""
Error taxonomy for Contemplate.

Errors raised during startup and the initial render terminate the process;
the same errors raised during a reload cycle are logged and the cycle is
skipped. Messages carry enough context (source, template or backup path and
the underlying cause) to act on without verbose logging.
"""

from __future__ import annotations

import enum as _enum
import pathlib as _pathlib


class ContemplateError(Exception):
    """Base class for all Contemplate errors."""

    pass


class ConfigurationError(ContemplateError):
    """Invalid option combination, detected before any I/O."""

    pass


class SourceErrorKind(_enum.Enum):
    """Why a data source could not be collected."""

    AUTH = "auth"
    CONNECTIVITY = "connectivity"
    PARSE = "parse"
    NOT_FOUND = "not found"


class SourceError(ContemplateError):
    """A data source could not be read, parsed or reached."""

    def __init__(self, source: str, kind: SourceErrorKind, message: str) -> None:
        self.source = source
        self.kind = kind
        super().__init__(f"Could not read source {source} ({kind.value}): {message}")


class WatchUnsupportedError(ContemplateError):
    """The data source cannot observe changes."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"Source {source} does not support watching for changes")


class RenderError(ContemplateError):
    """A render pass failed; nothing from the pass was committed."""

    pass


class TemplateRenderError(RenderError):
    """A template could not be loaded or evaluated."""

    def __init__(self, template: str, message: str) -> None:
        self.template = template
        super().__init__(f"Template {template} failed to render: {message}")


class BackupCollisionError(RenderError):
    """An in-place backup would overwrite an existing file."""

    def __init__(self, path: _pathlib.Path) -> None:
        self.path = path
        super().__init__(f"Refusing to overwrite existing backup {path}")


class HookSupersessionTimeoutError(ContemplateError):
    """A superseded reload hook did not exit after being interrupted and killed."""

    def __init__(self, pid: int, timeout: float) -> None:
        self.pid = pid
        self.timeout = timeout
        super().__init__(
            f"Previous reload hook (PID {pid}) did not exit within {timeout:g}s "
            "after SIGINT and SIGKILL; not starting a new one"
        )


class NotificationWarning(UserWarning):
    """A reload signal could not be delivered to its target."""

    pass
