"""
Process supervisor: hand off to the program given with ``--and-then-exec``.

Without ``--watch`` the current process is replaced by the target.

With ``--watch`` the process forks into two branches:
- CONSUMER (the original process) execs the target. It keeps our PID, so a
  target started as a container entrypoint stays PID 1 and receives the
  container's signals.
- WATCHER (the child) runs the watch engine. It asks the kernel for SIGTERM
  when its parent dies, so it never outlives the consumer.

With ``--daemonize`` the process first detaches into the background; the
handoff above then happens in the detached process.
"""

from __future__ import annotations

import ctypes as _ctypes
import dataclasses as _dataclasses
import enum as _enum
import logging as _logging
import os as _os
import shutil as _shutil
import signal as _signal
import sys as _sys
import typing as _typing

import contemplate.errors as errors

_logger = _logging.getLogger(__name__)

_PR_SET_PDEATHSIG = 1
_STDIN_FILENO = 0
_STDOUT_FILENO = 1


class Branch(_enum.Enum):
    """Which side of the watch-mode fork a process is on."""

    CONSUMER = "consumer"
    WATCHER = "watcher"


@_dataclasses.dataclass(frozen=True)
class ExecTarget:
    """A resolved program to hand off to."""

    path: str
    """Absolute path of the executable."""

    args: tuple[str, ...] = ()

    argv0: str = ""
    """Name the program was given as; defaults to ``path``."""

    @classmethod
    def resolve(cls, program: str, args: _typing.Sequence[str] = ()) -> ExecTarget:
        """
        Resolve a program name through ``PATH``.

        Raises:
            ConfigurationError: If the program cannot be found or run.
        """
        path = _shutil.which(program)
        if path is None:
            raise errors.ConfigurationError(f"Cannot find executable {program!r} to run")
        return cls(path=path, args=tuple(args), argv0=program)

    @property
    def argv(self) -> list[str]:
        return [self.argv0 or self.path, *self.args]


def _flush_output() -> None:
    for handler in _logging.getLogger().handlers + _logging.getLogger("contemplate").handlers:
        handler.flush()
    _sys.stdout.flush()
    _sys.stderr.flush()


def exec_target(target: ExecTarget) -> _typing.NoReturn:
    """
    Replace the current process with the target.

    Raises:
        ContemplateError: If the exec fails.
    """
    _logger.debug("Executing %s", " ".join(target.argv))
    _flush_output()
    try:
        _os.execv(target.path, target.argv)
    except OSError as e:
        raise errors.ContemplateError(f"Could not execute {target.path}: {e}") from e


def set_parent_death_signal(signum: int = _signal.SIGTERM) -> bool:
    """
    Ask the kernel to send ``signum`` when our parent exits (Linux only).

    Returns:
        Whether the request was registered.
    """
    if not _sys.platform.startswith("linux"):
        _logger.debug("Parent death signal not supported on %s", _sys.platform)
        return False
    libc = _ctypes.CDLL(None, use_errno=True)
    if libc.prctl(_PR_SET_PDEATHSIG, int(signum), 0, 0, 0) != 0:
        errno = _ctypes.get_errno()
        _logger.warning("Could not set parent death signal: %s", _os.strerror(errno))
        return False
    return True


def fork_for_watch(target: ExecTarget) -> None:
    """
    Fork, exec the target in the original process, and return in the child.

    Only the watcher branch returns; the consumer branch never does.
    """
    consumer_pid = _os.getpid()
    _flush_output()
    child_pid = _os.fork()
    branch = Branch.WATCHER if child_pid == 0 else Branch.CONSUMER

    if branch is Branch.CONSUMER:
        _logger.debug("Contemplate will continue to run as PID %d", child_pid)
        exec_target(target)

    set_parent_death_signal(_signal.SIGTERM)
    if _os.getppid() != consumer_pid:
        # The consumer exited before the death signal was registered.
        _logger.error("%s exited before watching started", target.argv0 or target.path)
        raise SystemExit(1)


def daemonize() -> bool:
    """
    Detach from the controlling terminal and keep running in the background.

    Forks twice with a new session in between. The calling process and the
    intermediate child exit 0; only the detached grandchild returns. Standard
    input and output are redirected to ``/dev/null``; standard error is kept
    for log output.

    Returns:
        Whether the process detached. On failure the error is logged and the
        caller keeps running in the foreground.
    """
    _flush_output()
    try:
        if _os.fork() != 0:
            _os._exit(0)
        _os.setsid()
        if _os.fork() != 0:
            _os._exit(0)
    except OSError as e:
        _logger.error("Failed to daemonize: %s", e)
        return False

    devnull = _os.open(_os.devnull, _os.O_RDWR)
    try:
        for fd in (_STDIN_FILENO, _STDOUT_FILENO):
            _os.dup2(devnull, fd)
    finally:
        _os.close(devnull)
    _logger.debug("Running in the background as PID %d", _os.getpid())
    return True
