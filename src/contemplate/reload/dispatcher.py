"""
Notification dispatcher.

Runs the configured reload action after a reload cycle changed some output.
Signals are best-effort: a target that cannot be found or signalled is a
``NotificationWarning``, never an error.

Hooks (shell commands and programs) follow the supersession rule: a hook
still running from an earlier cycle is interrupted with SIGINT and awaited
before the next one starts. A hook that ignores SIGINT for
``terminate_timeout`` seconds is killed; if it still has not exited after
another ``terminate_timeout`` the dispatcher raises
``HookSupersessionTimeoutError`` instead of starting a new one.
"""

from __future__ import annotations

import asyncio as _asyncio
import logging as _logging
import os as _os
import signal as _signal
import typing as _typing
import warnings as _warnings

import psutil as _psutil

import contemplate.constants as _constants
import contemplate.errors as errors
import contemplate.reload.actions as actions

if _typing.TYPE_CHECKING:
    import pathlib as _pathlib

_logger = _logging.getLogger(__name__)


def find_processes_by_name(substring: str) -> list[int]:
    """PIDs of processes whose name contains ``substring``, excluding ourselves."""
    own_pid = _os.getpid()
    pids = []
    for process in _psutil.process_iter(["pid", "name"]):
        name = process.info.get("name") or ""
        if substring in name and process.info["pid"] != own_pid:
            pids.append(process.info["pid"])
    return pids


class NotificationDispatcher:
    """Runs one reload action per notification."""

    def __init__(
        self,
        action: actions.SignalAction | actions.ShellCommandAction | actions.ExecAction | None,
        *,
        terminate_timeout: float = _constants.DEFAULT_HOOK_TERMINATE_TIMEOUT,
    ) -> None:
        self._action = action
        self._terminate_timeout = terminate_timeout
        self._process: _asyncio.subprocess.Process | None = None
        self._reapers: set[_asyncio.Task[None]] = set()

    @property
    def action(self) -> actions.SignalAction | actions.ShellCommandAction | actions.ExecAction | None:
        return self._action

    @property
    def running_hook(self) -> _asyncio.subprocess.Process | None:
        """The most recent hook process, if it is still running."""
        if self._process is not None and self._process.returncode is None:
            return self._process
        return None

    async def notify(self, changed_paths: _typing.Sequence[_pathlib.Path | str]) -> None:
        """
        Run the reload action for one cycle.

        Args:
            changed_paths: Outputs changed by this cycle.

        Raises:
            HookSupersessionTimeoutError: If a previous hook would not exit.
        """
        action = self._action
        if action is None:
            return
        if isinstance(action, actions.SignalAction):
            self._send_signal(action)
            return
        await self._supersede()
        await self._launch(action, changed_paths)

    async def aclose(self) -> None:
        """Interrupt a still-running hook at shutdown."""
        try:
            await self._supersede()
        except errors.HookSupersessionTimeoutError as e:
            _logger.error("%s", e)
            return
        if self._reapers:
            await _asyncio.gather(*self._reapers, return_exceptions=True)

    def _resolve(self, target: actions.ByPid | actions.ByName | actions.Parent) -> list[int]:
        if isinstance(target, actions.ByPid):
            return [target.pid]
        if isinstance(target, actions.Parent):
            return [_os.getppid()]
        return find_processes_by_name(target.name)

    def _send_signal(self, action: actions.SignalAction) -> None:
        pids = self._resolve(action.target)
        if not pids:
            _warnings.warn(
                f"No process found for {action.target}; {action.signal_name} not sent",
                errors.NotificationWarning,
                stacklevel=2,
            )
            return
        for pid in pids:
            try:
                _os.kill(pid, action.signal)
            except ProcessLookupError:
                _warnings.warn(
                    f"Process {pid} exited before {action.signal_name} could be sent",
                    errors.NotificationWarning,
                    stacklevel=2,
                )
            except PermissionError:
                _warnings.warn(
                    f"Not permitted to send {action.signal_name} to process {pid}",
                    errors.NotificationWarning,
                    stacklevel=2,
                )
            else:
                _logger.info("Sent %s to process %d", action.signal_name, pid)

    async def _supersede(self) -> None:
        process = self.running_hook
        if process is None:
            return

        _logger.info("Interrupting previous reload hook (PID %d)", process.pid)
        try:
            process.send_signal(_signal.SIGINT)
        except ProcessLookupError:
            pass
        if await self._wait(process):
            return

        _logger.warning(
            "Reload hook (PID %d) did not exit %gs after SIGINT, killing it",
            process.pid,
            self._terminate_timeout,
        )
        try:
            process.kill()
        except ProcessLookupError:
            pass
        if await self._wait(process):
            return
        raise errors.HookSupersessionTimeoutError(process.pid, self._terminate_timeout)

    async def _wait(self, process: _asyncio.subprocess.Process) -> bool:
        try:
            await _asyncio.wait_for(process.wait(), timeout=self._terminate_timeout)
        except TimeoutError:
            return False
        return True

    async def _launch(
        self,
        action: actions.ShellCommandAction | actions.ExecAction,
        changed_paths: _typing.Sequence[_pathlib.Path | str],
    ) -> None:
        env = _os.environ.copy()
        env[_constants.ENV_CONTEMPLATED_FILES] = ",".join(str(path) for path in changed_paths)

        try:
            if isinstance(action, actions.ShellCommandAction):
                process = await _asyncio.create_subprocess_shell(
                    action.command,
                    stdin=_asyncio.subprocess.DEVNULL,
                    env=env,
                )
                description = action.command
            else:
                process = await _asyncio.create_subprocess_exec(
                    action.path,
                    *action.args,
                    stdin=_asyncio.subprocess.DEVNULL,
                    env=env,
                )
                description = " ".join((action.path, *action.args))
        except OSError as e:
            _logger.error("Could not start reload hook: %s", e)
            return

        _logger.info("Started reload hook (PID %d): %s", process.pid, description)
        self._process = process
        reaper = _asyncio.create_task(self._report_exit(process))
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)

    @staticmethod
    async def _report_exit(process: _asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        if returncode == 0:
            _logger.debug("Reload hook (PID %d) finished", process.pid)
        else:
            _logger.warning("Reload hook (PID %d) exited with status %d", process.pid, returncode)
