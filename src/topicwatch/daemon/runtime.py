"""Daemon runtime: the entry point run inside a spawned worker process.

Lifecycle: BOOT -> RUNNING -> SHUTTING_DOWN -> TERMINATED

    BOOT           claim the PID record, install SIGTERM/SIGINT handlers,
                   start the orphan watch and the cycle ticker
    RUNNING        each tick spawns a processing cycle; the lock record
                   keeps at most one cycle body in flight
    SHUTTING_DOWN  stop the ticker and the orphan watch, drop the PID
                   record, let an in-flight cycle drain
    TERMINATED     process may exit

SIGKILL cannot be trapped. Records it leaves behind are reclaimed by the
supervisor's status check or by stale-record reclamation.
"""

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from datetime import UTC, datetime, timedelta
from enum import Enum
from types import TracebackType
from typing import Any, Protocol

from apscheduler import AsyncScheduler
from apscheduler.triggers.interval import IntervalTrigger

from topicwatch.config import Settings, get_settings
from topicwatch.kinds import DaemonKind
from topicwatch.utils.async_bridge import run_async_in_sync
from topicwatch.utils.logging import LOG_FORMAT, log_to_file, setup_logging

from .context import DaemonContext, build_context
from .cycle import CycleReport, run_cycle
from .records import PidRecord, RecordPaths, is_process_alive

logger = logging.getLogger(__name__)

PARENT_PID_ENV = "TOPICWATCH_PARENT_PID"


class DaemonState(Enum):
    """State of the daemon runtime."""

    BOOT = "boot"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class Ticker(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class CycleTicker:
    """Fires a callback once after ``first_run_delay``, then every ``period``.

    Uses one APScheduler 4 IntervalTrigger whose start time is the first
    run, so the recurring ticks are anchored to it. The callback must
    return quickly; long work is spawned as a task by the runtime.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        period: float,
        first_run_delay: float,
        name: str,
    ) -> None:
        self.callback = callback
        self.period = period
        self.first_run_delay = first_run_delay
        self.name = name
        self._stack: AsyncExitStack | None = None
        self._scheduler: AsyncScheduler | None = None

    async def start(self) -> None:
        """Start the scheduler and register the cycle schedule."""
        if self._scheduler:
            logger.warning("Ticker already running")
            return

        self._stack = AsyncExitStack()
        self._scheduler = await self._stack.enter_async_context(AsyncScheduler())

        first_run = datetime.now(UTC) + timedelta(seconds=self.first_run_delay)
        await self._scheduler.add_schedule(
            self.callback,
            IntervalTrigger(seconds=self.period, start_time=first_run),
            id=f"{self.name}-cycle",
        )
        await self._scheduler.start_in_background()
        logger.info(
            f"Registered: {self.name}-cycle (every {self.period:g}s, "
            f"first run in {self.first_run_delay:g}s)"
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._scheduler or not self._stack:
            return
        await self._scheduler.stop()
        await self._stack.aclose()
        self._scheduler = None
        self._stack = None
        logger.info(f"Ticker {self.name} stopped")


TickerFactory = Callable[[Callable[[], Awaitable[None]], float, float, str], Ticker]


class DaemonRuntime:
    """Main loop of one (topic, kind) daemon process."""

    def __init__(
        self,
        ctx: DaemonContext,
        ticker_factory: TickerFactory = CycleTicker,
        install_signal_handlers: bool = True,
    ) -> None:
        self.ctx = ctx
        self.state = DaemonState.BOOT
        self.started_at: datetime | None = None
        self.shutdown_reason: str | None = None
        self._ticker_factory = ticker_factory
        self._install_signal_handlers = install_signal_handlers
        self._ticker: Ticker | None = None
        self._orphan_task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[CycleReport]] = set()
        self._shutdown_event = asyncio.Event()
        self._signals: list[signal.Signals] = []

    async def run(self) -> int:
        """Boot, serve ticks until shutdown, then clean up.

        Returns:
            Process exit code
        """
        ctx = self.ctx
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(self._handle_loop_exception)

        if not ctx.pid_record.acquire():
            logger.error(
                f"Daemon already running for {ctx.label} with PID {ctx.pid_record.read()}"
            )
            self.state = DaemonState.TERMINATED
            return 1

        self.started_at = datetime.now()
        logger.info(f"Daemon starting for {ctx.label} (PID {os.getpid()})")
        logger.info(f"PID file written: {ctx.paths.pid}")

        if self._install_signal_handlers:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.request_shutdown, f"received {sig.name}")
                self._signals.append(sig)

        if ctx.parent_pid:
            logger.info(f"Watching parent process {ctx.parent_pid}")
            self._orphan_task = asyncio.create_task(self._watch_parent())

        try:
            self._ticker = self._ticker_factory(
                self._on_tick,
                ctx.profile.period,
                ctx.settings.first_run_delay,
                f"{ctx.topic}-{ctx.kind.suffix}",
            )
            await self._ticker.start()
            self.state = DaemonState.RUNNING
            logger.info(f"Daemon running for {ctx.label} (every {ctx.profile.period:g}s)")

            await self._shutdown_event.wait()
        finally:
            await self._shutdown()
        return 0

    def request_shutdown(self, reason: str = "requested") -> None:
        """Begin shutdown; safe to call more than once."""
        if self._shutdown_event.is_set():
            return
        self.shutdown_reason = reason
        logger.info(f"Shutting down {self.ctx.label}: {reason}")
        self._shutdown_event.set()

    def trigger_cycle(self) -> asyncio.Task[CycleReport] | None:
        """Spawn a processing cycle unless the runtime is shutting down.

        Single flight is enforced by the cycle's lock record: a cycle spawned
        while another is in flight returns immediately as busy.
        """
        if self._shutdown_event.is_set():
            return None
        task = asyncio.create_task(run_cycle(self.ctx))
        self._inflight.add(task)
        task.add_done_callback(self._cycle_done)
        return task

    def check_parent(self) -> bool:
        """Check the controlling parent; shut down if it is gone.

        Returns:
            True if the parent is alive (or not watched)
        """
        parent = self.ctx.parent_pid
        if not parent or is_process_alive(parent):
            return True
        logger.warning(f"Parent process (PID {parent}) no longer exists")
        self.request_shutdown(f"parent process {parent} gone")
        return False

    async def _on_tick(self) -> None:
        logger.info(f"[{datetime.now().isoformat()}] Running cycle check for {self.ctx.label}")
        self.trigger_cycle()

    async def _watch_parent(self) -> None:
        interval = self.ctx.settings.orphan_check_interval
        while not self._shutdown_event.is_set():
            await asyncio.sleep(interval)
            if not self.check_parent():
                return

    def _cycle_done(self, task: asyncio.Task[CycleReport]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Cycle for {self.ctx.label} crashed", exc_info=exc)
            return
        logger.info(task.result().summary())

    async def _shutdown(self) -> None:
        self.state = DaemonState.SHUTTING_DOWN
        logger.info(f"Cleaning up {self.ctx.label}...")

        if self._ticker:
            try:
                await self._ticker.stop()
            except Exception:
                logger.exception("Failed to stop ticker cleanly")

        if self._orphan_task and not self._orphan_task.done():
            self._orphan_task.cancel()

        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

        if self.ctx.pid_record.release():
            logger.info("PID file removed")

        if self._inflight:
            logger.info(f"Waiting for {len(self._inflight)} in-flight cycle(s) to finish")
            await asyncio.gather(*self._inflight, return_exceptions=True)

        self.state = DaemonState.TERMINATED
        logger.info(f"Daemon stopped for {self.ctx.label}")

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error(f"Unhandled error in daemon loop: {context.get('message')}", exc_info=exc)


def resolve_parent_pid() -> int | None:
    """Controller pid to watch: ``TOPICWATCH_PARENT_PID`` or the OS parent.

    A value of ``0`` disables the orphan watch.
    """
    raw = os.environ.get(PARENT_PID_ENV)
    if raw is None:
        return os.getppid()
    try:
        pid = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {PARENT_PID_ENV}={raw!r}")
        return os.getppid()
    return pid or None


def _log_uncaught(
    exc_type: type[BaseException],
    exc: BaseException,
    tb: TracebackType | None,
) -> None:
    logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))


def run_daemon(topic: str, kind: DaemonKind, settings: Settings | None = None) -> int:
    """Run the daemon for (topic, kind) in the current process until shutdown.

    Returns:
        Process exit code
    """
    settings = settings or get_settings()
    setup_logging(level=settings.log_level, console_level=settings.log_level, console_format=LOG_FORMAT)
    sys.excepthook = _log_uncaught

    ctx = build_context(topic, kind, settings, parent_pid=resolve_parent_pid())
    runtime = DaemonRuntime(ctx)
    return asyncio.run(runtime.run())


def stop_daemon(topic: str, kind: DaemonKind, settings: Settings | None = None) -> bool:
    """In-process cleanup entry point for a (topic, kind) daemon.

    Removes the PID record without signalling anything; the supervisor
    signals the process separately.

    Returns:
        True if a PID record was removed
    """
    settings = settings or get_settings()
    paths = RecordPaths.for_topic(topic, kind, settings)
    removed = PidRecord(paths.pid).remove()
    if removed:
        logger.info(f"Removed PID file: {paths.pid}")
    return removed


def process_once(
    topic: str,
    kind: DaemonKind,
    settings: Settings | None = None,
    ctx: DaemonContext | None = None,
) -> CycleReport:
    """Run one processing cycle synchronously, logging into the topic log.

    Raises:
        ConfigMissing: If the topic or pipeline is not configured
        CollaboratorError: If a collaborator cannot be built
        OSError: If a record or the cursor cannot be written
    """
    ctx = ctx or build_context(topic, kind, settings)
    with log_to_file(ctx.paths.log, ctx.settings.log_level):
        return run_async_in_sync(run_cycle(ctx))
