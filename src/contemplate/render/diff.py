"""
Unified diffs of rendered output, printed to stderr.
"""

from __future__ import annotations

import datetime as _datetime
import difflib as _difflib
import pathlib as _pathlib

import rich.console as _rich_console
import rich.text as _rich_text

_LINE_STYLES = {
    "+": "green",
    "-": "red",
    "@": "yellow",
}


def _timestamp(when: _datetime.datetime | None) -> str:
    if when is None:
        return ""
    return when.astimezone().isoformat(sep=" ")


def unified_diff(
    path: _pathlib.Path | str,
    old: str,
    new: str,
    old_mtime: _datetime.datetime | None = None,
) -> str:
    """
    Diff previous and new content of one output.

    Headers are ``path\\t<timestamp>``; the new side is stamped now. Returns
    an empty string when the contents are identical.
    """
    lines = _difflib.unified_diff(
        old.splitlines(keepends=True),
        new.splitlines(keepends=True),
        fromfile=str(path),
        tofile=str(path),
        fromfiledate=_timestamp(old_mtime),
        tofiledate=_timestamp(_datetime.datetime.now(_datetime.timezone.utc)),
    )
    text = ""
    for line in lines:
        text += line if line.endswith("\n") else line + "\n\\ No newline at end of file\n"
    return text


def emit_diff(text: str, console: _rich_console.Console | None = None) -> None:
    """Print a diff, coloured when the console is a terminal."""
    console = console or _rich_console.Console(stderr=True, highlight=False)
    for line in text.splitlines():
        style = None if line.startswith(("+++", "---")) else _LINE_STYLES.get(line[:1])
        console.print(_rich_text.Text(line, style=style or ""), soft_wrap=True)
