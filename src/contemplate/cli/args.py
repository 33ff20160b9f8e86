"""
Pre-scan of order-sensitive and variadic command-line options.

Click parses options by name, which loses two things this tool needs:
the relative order of data sources across different options, and options
with a variable number of values. These are taken out of argv here, before
click parses what remains:

    -f/--file PATH                 data source, in order
    -e/--env/--environment[=PFX]   data source, in order (prefix attached)
    --k8s-configmap NAME           data source, in order
    --k8s-secret NAME              data source, in order
    -t/--template IN [OUT]         one or two values
    -i/--in-place[=EXT]            optional attached value
    --on-reload-signal SIG [TGT]   one or two values
    -R/--on-reload-execute PATH [ARGS...] ;
    -x/--and-then-exec PATH [ARGS...] ;

Everything after ``--`` is left for click.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import typing as _typing

import contemplate.errors as errors

TERMINATOR = ";"

_SOURCE_OPTIONS = {
    "-f": "file",
    "--file": "file",
    "--k8s-configmap": "k8s-configmap",
    "--k8s-secret": "k8s-secret",
}
_ENV_OPTIONS = ("-e", "--env", "--environment")
_TEMPLATE_OPTIONS = ("-t", "--template")
_IN_PLACE_OPTIONS = ("-i", "--in-place")
_SIGNAL_OPTIONS = ("--on-reload-signal",)
_EXECUTE_OPTIONS = ("-R", "--on-reload-execute")
_AND_THEN_EXEC_OPTIONS = ("-x", "--and-then-exec")


@_dataclasses.dataclass
class ScannedArgs:
    """Values taken out of argv, plus what is left for click."""

    sources: list[tuple[str, str | None]] = _dataclasses.field(default_factory=list)
    """(kind, argument) pairs in command-line order."""

    templates: list[tuple[str, str | None]] = _dataclasses.field(default_factory=list)
    in_place: bool = False
    backup_extension: str | None = None
    reload_signal: tuple[str, str | None] | None = None
    reload_execute: tuple[str, ...] | None = None
    and_then_exec: tuple[str, ...] | None = None
    remaining: list[str] = _dataclasses.field(default_factory=list)


def _split(token: str) -> tuple[str, str | None]:
    """Split ``--opt=value`` / ``-o=value`` / ``-ovalue`` into option and attached value."""
    if token.startswith("--"):
        name, sep, value = token.partition("=")
        return name, value if sep else None
    if len(token) > 2:
        value = token[2:]
        return token[:2], value[1:] if value.startswith("=") else value
    return token, None


def _takes_value(token: str) -> bool:
    return token == "-" or not token.startswith("-")


class _Scanner:
    def __init__(self, argv: _typing.Sequence[str]) -> None:
        self._argv = list(argv)
        self._index = 0
        self.result = ScannedArgs()

    def _next_value(self, option: str) -> str:
        if self._index >= len(self._argv):
            raise errors.ConfigurationError(f"Option {option} requires a value")
        value = self._argv[self._index]
        self._index += 1
        return value

    def _optional_value(self) -> str | None:
        if self._index < len(self._argv) and _takes_value(self._argv[self._index]):
            value = self._argv[self._index]
            self._index += 1
            return value
        return None

    def _until_terminator(self, option: str, attached: str | None) -> tuple[str, ...]:
        values = [] if attached is None else [attached]
        while self._index < len(self._argv):
            token = self._argv[self._index]
            self._index += 1
            if token == TERMINATOR:
                break
            values.append(token)
        if not values:
            raise errors.ConfigurationError(f"Option {option} requires a program to run")
        return tuple(values)

    def scan(self) -> ScannedArgs:
        result = self.result
        while self._index < len(self._argv):
            token = self._argv[self._index]
            self._index += 1

            if token == "--":
                result.remaining.extend(self._argv[self._index - 1 :])
                break
            if not token.startswith("-") or token == "-":
                result.remaining.append(token)
                continue

            option, attached = _split(token)
            if option in _SOURCE_OPTIONS:
                value = attached if attached is not None else self._next_value(option)
                result.sources.append((_SOURCE_OPTIONS[option], value))
            elif option in _ENV_OPTIONS:
                result.sources.append(("env", attached or None))
            elif option in _TEMPLATE_OPTIONS:
                source = attached if attached is not None else self._next_value(option)
                result.templates.append((source, self._optional_value()))
            elif option in _IN_PLACE_OPTIONS:
                result.in_place = True
                result.backup_extension = attached or None
            elif option in _SIGNAL_OPTIONS:
                if result.reload_signal is not None:
                    raise errors.ConfigurationError(f"Option {option} given more than once")
                signal = attached if attached is not None else self._next_value(option)
                result.reload_signal = (signal, self._optional_value())
            elif option in _EXECUTE_OPTIONS:
                if result.reload_execute is not None:
                    raise errors.ConfigurationError(f"Option {option} given more than once")
                result.reload_execute = self._until_terminator(option, attached)
            elif option in _AND_THEN_EXEC_OPTIONS:
                if result.and_then_exec is not None:
                    raise errors.ConfigurationError(f"Option {option} given more than once")
                result.and_then_exec = self._until_terminator(option, attached)
            else:
                result.remaining.append(token)
        return result


def scan(argv: _typing.Sequence[str]) -> ScannedArgs:
    """
    Take the pre-scanned options out of argv.

    Raises:
        ConfigurationError: If an option is missing its value.
    """
    return _Scanner(argv).scan()
