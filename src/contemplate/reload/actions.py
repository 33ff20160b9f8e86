"""
Reload actions: what to do after a reload cycle changed some output.

- ``SignalAction``: send a signal to processes chosen by a target selector
- ``ShellCommandAction``: run a command through ``/bin/sh -c``
- ``ExecAction``: run a program directly, without a shell

Signal targets are a PID, a process-name substring, or ``:parent`` (the
process started with ``--and-then-exec``, which is our parent in watch mode).
"""

from __future__ import annotations

import signal as _signal
import typing as _typing

import pydantic as _pydantic

import contemplate.constants as _constants
import contemplate.errors as errors


class ByPid(_pydantic.BaseModel):
    """Target one process by PID."""

    model_config = _pydantic.ConfigDict(frozen=True)

    kind: _typing.Literal["pid"] = "pid"
    pid: int = _pydantic.Field(gt=0)

    def __str__(self) -> str:
        return f"PID {self.pid}"


class ByName(_pydantic.BaseModel):
    """Target every process whose name contains a substring."""

    model_config = _pydantic.ConfigDict(frozen=True)

    kind: _typing.Literal["name"] = "name"
    name: str = _pydantic.Field(min_length=1)

    def __str__(self) -> str:
        return f"processes named like {self.name!r}"


class Parent(_pydantic.BaseModel):
    """Target our parent process."""

    model_config = _pydantic.ConfigDict(frozen=True)

    kind: _typing.Literal["parent"] = "parent"

    def __str__(self) -> str:
        return "parent process"


TargetSelector = _typing.Annotated[
    ByPid | ByName | Parent,
    _pydantic.Field(discriminator="kind"),
]


class SignalAction(_pydantic.BaseModel):
    """Send a signal to the selected processes."""

    model_config = _pydantic.ConfigDict(frozen=True)

    kind: _typing.Literal["signal"] = "signal"
    signal: int = _pydantic.Field(gt=0)
    target: TargetSelector = _pydantic.Field(default_factory=Parent)

    @property
    def signal_name(self) -> str:
        try:
            return _signal.Signals(self.signal).name
        except ValueError:
            return str(self.signal)


class ShellCommandAction(_pydantic.BaseModel):
    """Run a shell command."""

    model_config = _pydantic.ConfigDict(frozen=True)

    kind: _typing.Literal["shell"] = "shell"
    command: str = _pydantic.Field(min_length=1)


class ExecAction(_pydantic.BaseModel):
    """Run a program with arguments, without a shell."""

    model_config = _pydantic.ConfigDict(frozen=True)

    kind: _typing.Literal["exec"] = "exec"
    path: str = _pydantic.Field(min_length=1)
    args: tuple[str, ...] = ()


ReloadAction = _typing.Annotated[
    SignalAction | ShellCommandAction | ExecAction,
    _pydantic.Field(discriminator="kind"),
]


def parse_signal(text: str) -> int:
    """
    Parse a signal given as a number or a name.

    ``1``, ``HUP``, ``hup`` and ``SIGHUP`` are all accepted.

    Raises:
        ConfigurationError: If the signal is unknown.
    """
    text = text.strip()
    if text.isdigit():
        number = int(text)
        if number <= 0:
            raise errors.ConfigurationError(f"Invalid signal number: {text}")
        return number
    name = text.upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return int(_signal.Signals[name])
    except KeyError:
        raise errors.ConfigurationError(f"Unknown signal: {text!r}") from None


def parse_target(text: str | None) -> ByPid | ByName | Parent:
    """
    Parse a signal target: ``:parent``, a PID, or a process-name substring.

    A missing target means the parent process.
    """
    if text is None or text == _constants.PARENT_TARGET:
        return Parent()
    if text.isdigit():
        pid = int(text)
        if pid <= 0:
            raise errors.ConfigurationError(f"Invalid PID: {text}")
        return ByPid(pid=pid)
    if not text:
        raise errors.ConfigurationError("Signal target name must not be empty")
    return ByName(name=text)
