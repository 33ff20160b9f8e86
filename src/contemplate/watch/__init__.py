"""
Watch mode: the debounced reload loop.
"""

from contemplate.watch.engine import (
    WatchEngine,
    check_watch_preconditions,
    log_provenance,
    run_until_signalled,
)

__all__ = [
    "WatchEngine",
    "check_watch_preconditions",
    "log_provenance",
    "run_until_signalled",
]
