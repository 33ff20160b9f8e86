"""
Log output configuration.

Logs go to stderr through a rich handler. Verbosity comes from the
command line (``-v``/``-q``) unless ``CONTEMPLATE_LOG`` names a level:

    -qqq  off
    -qq   ERROR
    -q    WARNING
          INFO
    -v    DEBUG
    -vv   DEBUG, plus which source supplied each key
"""

from __future__ import annotations

import logging as _logging
import warnings as _warnings

import rich.console as _rich_console
import rich.logging as _rich_logging

import contemplate.errors as errors

PACKAGE_LOGGER = "contemplate"
PROVENANCE_LOGGER = "contemplate.provenance"
WARNINGS_LOGGER = "py.warnings"

OFF = _logging.CRITICAL + 10

_VERBOSITY_LEVELS = {
    -3: OFF,
    -2: _logging.ERROR,
    -1: _logging.WARNING,
    0: _logging.INFO,
    1: _logging.DEBUG,
}


def level_for(verbosity: int, override: str | None = None) -> int:
    """
    Map a verbosity count (``-v`` minus ``-q``) or a level name to a level.

    Args:
        verbosity: Net verbosity; clamped to the supported range.
        override: Level name such as ``DEBUG`` or ``OFF``, which wins.
    """
    if override:
        name = override.upper()
        if name == "OFF":
            return OFF
        level = _logging.getLevelName(name)
        return level if isinstance(level, int) else _logging.INFO
    return _VERBOSITY_LEVELS[max(-3, min(1, verbosity))]


def configure_logging(
    verbosity: int = 0,
    override: str | None = None,
    *,
    console: _rich_console.Console | None = None,
) -> int:
    """
    Install the stderr handler on the package logger.

    Safe to call more than once; earlier handlers are replaced.

    Returns:
        The effective level of the package logger.
    """
    level = level_for(verbosity, override)
    handler = _rich_logging.RichHandler(
        console=console or _rich_console.Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
        log_time_format="[%X]",
    )
    handler.setFormatter(_logging.Formatter("%(message)s"))

    for name in (PACKAGE_LOGGER, WARNINGS_LOGGER):
        logger = _logging.getLogger(name)
        for existing in list(logger.handlers):
            if isinstance(existing, _rich_logging.RichHandler):
                logger.removeHandler(existing)
        logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False

    show_provenance = verbosity >= 2 or (override or "").upper() == "DEBUG"
    _logging.getLogger(PROVENANCE_LOGGER).setLevel(_logging.DEBUG if show_provenance else max(level, _logging.INFO))

    # Undelivered signals are reported on every reload, not once per call site.
    _warnings.filterwarnings("always", category=errors.NotificationWarning)
    _logging.captureWarnings(True)
    return level
