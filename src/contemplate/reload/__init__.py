"""
Reload notifications: actions and the dispatcher that runs them.
"""

from contemplate.reload.actions import (
    ByName,
    ByPid,
    ExecAction,
    Parent,
    ReloadAction,
    ShellCommandAction,
    SignalAction,
    TargetSelector,
    parse_signal,
    parse_target,
)
from contemplate.reload.dispatcher import NotificationDispatcher, find_processes_by_name

__all__ = [
    "ByName",
    "ByPid",
    "ExecAction",
    "NotificationDispatcher",
    "Parent",
    "ReloadAction",
    "ShellCommandAction",
    "SignalAction",
    "TargetSelector",
    "find_processes_by_name",
    "parse_signal",
    "parse_target",
]
