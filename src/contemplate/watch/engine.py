"""
Watch engine: turns change events into reload cycles.

Providers that can observe changes push ``ChangeEvent``s onto one queue.
The engine is the only consumer:

1. Idle: wait for the first event (or shutdown).
2. Debouncing: keep draining events until none arrives for the debounce
   window; each event restarts the window.
3. Reconciling: collect every source afresh, render, and notify the
   dispatcher when an output changed.

Cycles never overlap. Events that arrive while a cycle is reconciling stay
on the queue and open the next debounce window.
"""

from __future__ import annotations

import asyncio as _asyncio
import logging as _logging
import signal as _signal
import typing as _typing

import contemplate.constants as _constants
import contemplate.datasource.base as base
import contemplate.errors as errors

if _typing.TYPE_CHECKING:
    import contemplate.context.snapshot as snapshot
    import contemplate.datasource.registry as registry
    import contemplate.reload.dispatcher as dispatcher
    import contemplate.render.plan as plan
    import contemplate.render.renderer as renderer

_logger = _logging.getLogger(__name__)
_provenance_logger = _logging.getLogger("contemplate.provenance")


def log_provenance(context_snapshot: snapshot.ContextSnapshot) -> None:
    """Log which source supplied each key (enabled with ``-vv``)."""
    if not _provenance_logger.isEnabledFor(_logging.DEBUG):
        return
    for key, label in context_snapshot.describe():
        _provenance_logger.debug("Key %s supplied by %s", key, label)


def check_watch_preconditions(
    source_registry: registry.SourceRegistry,
    render_plan: plan.Plan,
) -> None:
    """
    Check that watch mode can work with this configuration.

    Raises:
        ConfigurationError: If an output goes to stdout, or no source can
            be watched.
    """
    if render_plan.writes_stdout:
        raise errors.ConfigurationError(
            "Cannot watch when rendering to stdout; give every template an output file"
        )
    if not source_registry.watchable:
        raise errors.ConfigurationError(
            "Cannot watch: none of the configured data sources supports watching"
        )


class WatchEngine:
    """Debounces change events and runs one reconciliation per burst."""

    def __init__(
        self,
        source_registry: registry.SourceRegistry,
        render_pass: renderer.RenderPass,
        notification_dispatcher: dispatcher.NotificationDispatcher,
        *,
        debounce: float = _constants.DEFAULT_DEBOUNCE_MS / 1000,
    ) -> None:
        self._registry = source_registry
        self._render_pass = render_pass
        self._dispatcher = notification_dispatcher
        self._debounce = debounce
        self._cycles = 0

    @property
    def cycles(self) -> int:
        """Number of reconciliation cycles run so far."""
        return self._cycles

    @property
    def debounce(self) -> float:
        return self._debounce

    async def run(self, stop_event: _asyncio.Event) -> None:
        """
        Watch sources until ``stop_event`` is set.

        On return every provider watcher has been stopped and the dispatcher
        closed.
        """
        queue: _asyncio.Queue[base.ChangeEvent] = _asyncio.Queue()
        notifier = base.Notifier(queue, _asyncio.get_running_loop())
        try:
            self._registry.start_watching(notifier)
            _logger.info(
                "Watching for changes in %s",
                ", ".join(source.label for source in self._registry.watchable),
            )
            while not stop_event.is_set():
                first = await self._next_event(queue, stop_event)
                if first is None:
                    break
                sources = await self._debounce_burst(queue, first)
                if stop_event.is_set():
                    break
                await self._reconcile(sources)
        finally:
            self._registry.stop_watching()
            await self._dispatcher.aclose()
            _logger.info("Stopped watching")

    async def _next_event(
        self,
        queue: _asyncio.Queue[base.ChangeEvent],
        stop_event: _asyncio.Event,
    ) -> base.ChangeEvent | None:
        get_task = _asyncio.ensure_future(queue.get())
        stop_task = _asyncio.ensure_future(stop_event.wait())
        done, pending = await _asyncio.wait(
            {get_task, stop_task},
            return_when=_asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        if get_task in done:
            return get_task.result()
        return None

    async def _debounce_burst(
        self,
        queue: _asyncio.Queue[base.ChangeEvent],
        first: base.ChangeEvent,
    ) -> set[str]:
        sources = {first.source_id}
        while True:
            try:
                event = await _asyncio.wait_for(queue.get(), timeout=self._debounce)
            except TimeoutError:
                return sources
            sources.add(event.source_id)

    async def _reconcile(self, sources: set[str]) -> None:
        _logger.debug("Reconciling after changes in %s", ", ".join(sorted(sources)))
        self._cycles += 1
        try:
            context_snapshot = await _asyncio.to_thread(self._registry.collect)
            log_provenance(context_snapshot)
            result = await _asyncio.to_thread(self._render_pass.render, context_snapshot, initial=False)
        except (errors.SourceError, errors.RenderError) as e:
            _logger.error("Reload skipped, previous output kept: %s", e)
            return

        if not result.changed:
            _logger.info("No output changed")
            return
        try:
            await self._dispatcher.notify(result.changed_paths)
        except errors.HookSupersessionTimeoutError as e:
            _logger.error("%s", e)


async def run_until_signalled(engine: WatchEngine) -> None:
    """Run the engine until SIGINT or SIGTERM."""
    loop = _asyncio.get_running_loop()
    stop_event = _asyncio.Event()
    signals = (_signal.SIGINT, _signal.SIGTERM)
    for signum in signals:
        loop.add_signal_handler(signum, stop_event.set)
    try:
        await engine.run(stop_event)
    finally:
        for signum in signals:
            loop.remove_signal_handler(signum)
