"""Supervisor: caller-facing control of per-topic daemon processes.

Used by HTTP routes, chat commands and the CLI. The supervisor talks to a
daemon only through OS signals and the persisted PID/lock records; there is
no RPC channel. Every public method returns a structured result and never
raises.
"""

import logging
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from topicwatch.config import Settings, get_settings, get_topic_config
from topicwatch.exceptions import AlreadyRunning, CollaboratorError, ConfigMissing, ProcessNotFound
from topicwatch.kinds import DaemonKind

from .cycle import CycleStatus
from .logs import LogEntry, read_logs
from .records import LockRecord, PidRecord, RecordPaths, is_process_alive
from .runtime import PARENT_PID_ENV, process_once, stop_daemon

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1


@dataclass
class OperationResult:
    """Result of start/stop/run_once."""

    success: bool
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


@dataclass
class StatusResult:
    """Result of a status check."""

    success: bool
    is_running: bool
    message: str
    topic: str
    kind: str
    pid: int | None = None
    started_at: datetime | None = None
    uptime_seconds: float | None = None
    externally_managed: bool = False
    starting: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "is_running": self.is_running,
            "message": self.message,
            "topic": self.topic,
            "kind": self.kind,
            "pid": self.pid,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "uptime_seconds": self.uptime_seconds,
            "externally_managed": self.externally_managed,
            "starting": self.starting,
        }


@dataclass
class SpawnedDaemon:
    """A daemon process started by this supervisor instance."""

    pid: int
    started_at: datetime
    process: subprocess.Popen = field(repr=False)


class Supervisor:
    """Starts, stops and checks (topic, kind) daemons."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._spawned: dict[tuple[str, DaemonKind], SpawnedDaemon] = {}

    def start(self, topic: str, kind: DaemonKind | str, watch_parent: bool = True) -> OperationResult:
        """Spawn a detached daemon for (topic, kind).

        Returns once the spawn call succeeds; the daemon writes its PID record
        asynchronously, so callers needing confirmation should poll ``status``
        after a short delay.

        Args:
            topic: Topic name
            kind: Daemon kind
            watch_parent: Whether the daemon exits when this process disappears
        """
        try:
            kind = self._resolve(topic, kind)
            status = self.status(topic, kind)
            if status.is_running or status.starting:
                raise AlreadyRunning(f"Daemon is already running for {topic}/{kind.value} (PID {status.pid})")
        except (ConfigMissing, AlreadyRunning) as e:
            return OperationResult(success=False, message=str(e))

        paths = RecordPaths.for_topic(topic, kind, self.settings)
        self.settings.ensure_directories()
        env = {
            **os.environ,
            **self.settings.to_env(),
            PARENT_PID_ENV: str(os.getpid()) if watch_parent else "0",
        }
        command = self.daemon_command(topic, kind)
        logger.info(f"Executing daemon: {' '.join(command)}")

        try:
            with paths.log.open("ab") as log:
                process = subprocess.Popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    env=env,
                    start_new_session=True,
                    close_fds=True,
                )
        except OSError as e:
            logger.error(f"Failed to spawn daemon for {topic}/{kind.value}: {e}")
            return OperationResult(success=False, message=f"Failed to start daemon: {e}")

        self._spawned[(topic, kind)] = SpawnedDaemon(
            pid=process.pid, started_at=datetime.now(), process=process
        )
        return OperationResult(
            success=True,
            message=f"Daemon started in background for {topic}/{kind.value} (PID {process.pid})",
        )

    def stop(self, topic: str, kind: DaemonKind | str) -> OperationResult:
        """Stop the (topic, kind) daemon: SIGTERM, grace window, then SIGKILL.

        Idempotent: a missing PID record is reported as already stopped,
        unless a child spawned here is still alive and has not written it yet.
        """
        try:
            kind = self._resolve(topic, kind)
        except ConfigMissing as e:
            return OperationResult(success=False, message=str(e))

        key = (topic, kind)
        paths = RecordPaths.for_topic(topic, kind, self.settings)
        pid_record = PidRecord(paths.pid)
        lock = LockRecord(paths.lock)
        pid = pid_record.read()
        spawned = self._live_child(key)
        if pid is None and spawned is not None:
            pid = spawned.pid

        if pid is None:
            stop_daemon(topic, kind, self.settings)
            if lock.exists() and lock.is_stale():
                lock.remove()
            self._spawned.pop(key, None)
            return OperationResult(success=True, message=f"Daemon already stopped for {topic}/{kind.value}")

        try:
            outcome = self._terminate(key, pid)
        except ProcessNotFound as e:
            logger.info(str(e))
            outcome = "process already exited"
        except PermissionError as e:
            logger.error(f"Not allowed to signal PID {pid}: {e}")
            return OperationResult(success=False, message=f"Error stopping daemon: {e}")

        # Second, redundant path: the daemon's own cleanup entry point
        stop_daemon(topic, kind, self.settings)
        for record in (pid_record, lock):
            if record.remove():
                logger.info(f"Cleaned up file: {record.path}")
        self._spawned.pop(key, None)

        return OperationResult(
            success=True,
            message=f"Daemon stopped and cleaned up for {topic}/{kind.value} ({outcome})",
        )

    def status(self, topic: str, kind: DaemonKind | str) -> StatusResult:
        """Check whether the (topic, kind) daemon is alive.

        A PID record naming a dead process is stale: it is removed together
        with the lock record and the daemon is reported as not running. A
        child spawned here that is alive but has not written its PID record
        yet is reported as starting.
        """
        kind_label = kind.value if isinstance(kind, DaemonKind) else str(kind)
        try:
            kind = self._resolve(topic, kind)
        except ConfigMissing as e:
            return StatusResult(
                success=False, is_running=False, message=str(e), topic=topic, kind=kind_label
            )

        key = (topic, kind)
        paths = RecordPaths.for_topic(topic, kind, self.settings)
        pid_record = PidRecord(paths.pid)
        pid = pid_record.read()
        label = f"{topic}/{kind.value}"
        spawned = self._live_child(key)

        if pid is None or not self._is_alive(key, pid):
            if pid is not None or (pid_record.exists() and pid_record.is_stale()):
                logger.info(f"Removing stale records for {label} (PID {pid})")
                pid_record.remove()
                LockRecord(paths.lock).remove()
            if spawned is not None:
                return StatusResult(
                    success=True,
                    is_running=False,
                    message=f"Daemon is starting for {label}",
                    topic=topic,
                    kind=kind.value,
                    pid=spawned.pid,
                    started_at=spawned.started_at,
                    starting=True,
                )
            return StatusResult(
                success=True,
                is_running=False,
                message=f"Daemon is not running for {label}",
                topic=topic,
                kind=kind.value,
            )

        if spawned and spawned.pid == pid:
            return StatusResult(
                success=True,
                is_running=True,
                message=f"Daemon is running for {label}",
                topic=topic,
                kind=kind.value,
                pid=pid,
                started_at=spawned.started_at,
                uptime_seconds=(datetime.now() - spawned.started_at).total_seconds(),
            )

        return StatusResult(
            success=True,
            is_running=True,
            message=f"Daemon is running for {label} (externally managed)",
            topic=topic,
            kind=kind.value,
            pid=pid,
            externally_managed=True,
        )

    def run_once(self, topic: str, kind: DaemonKind | str) -> OperationResult:
        """Run one processing cycle synchronously in this process."""
        try:
            kind = self._resolve(topic, kind)
            status = self.status(topic, kind)
            if status.is_running:
                raise AlreadyRunning(
                    f"Daemon is already running for {topic}/{kind.value}. "
                    "Stop it first before manual processing."
                )
            report = process_once(topic, kind, self.settings)
        except (ConfigMissing, AlreadyRunning, CollaboratorError) as e:
            return OperationResult(success=False, message=str(e))
        except OSError as e:
            logger.error(f"Manual run failed for {topic}/{kind.value}: {e}")
            return OperationResult(success=False, message=f"Manual run failed: {e}")

        return OperationResult(
            success=report.status is CycleStatus.COMPLETED,
            message=report.summary(),
            details=report.to_dict(),
        )

    def read_logs(self, topic: str, kind: DaemonKind | str, lines: int = 50) -> list[LogEntry]:
        """Last ``lines`` non-empty lines of the (topic, kind) log."""
        try:
            kind = self._resolve(topic, kind)
        except ConfigMissing as e:
            logger.warning(str(e))
            return []
        return read_logs(RecordPaths.for_topic(topic, kind, self.settings).log, lines)

    def daemon_command(self, topic: str, kind: DaemonKind) -> list[str]:
        """Command line of the spawned daemon process."""
        return [sys.executable, "-m", "topicwatch.cli", "daemon", "run", topic, kind.value]

    def _resolve(self, topic: str, kind: DaemonKind | str) -> DaemonKind:
        try:
            kind = DaemonKind(kind)
        except ValueError:
            valid = ", ".join(k.value for k in DaemonKind)
            raise ConfigMissing(f"Unknown daemon kind '{kind}' (expected one of: {valid})") from None
        get_topic_config(topic, self.settings).pipeline(kind)
        return kind

    def _live_child(self, key: tuple[str, DaemonKind]) -> SpawnedDaemon | None:
        """Our spawned child for ``key`` while it runs; forgotten once it exits."""
        spawned = self._spawned.get(key)
        if spawned is None:
            return None
        code = spawned.process.poll()
        if code is None:
            return spawned
        logger.info(f"Daemon process {spawned.pid} exited with code {code}")
        del self._spawned[key]
        return None

    def _is_alive(self, key: tuple[str, DaemonKind], pid: int) -> bool:
        spawned = self._spawned.get(key)
        # Reap our own exited children so they don't pass the liveness check as zombies
        if spawned and spawned.pid == pid and spawned.process.poll() is not None:
            return False
        return is_process_alive(pid)

    def _terminate(self, key: tuple[str, DaemonKind], pid: int) -> str:
        logger.info(f"Stopping daemon (PID {pid})...")
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            raise ProcessNotFound(f"Process {pid} was already gone") from None

        deadline = time.monotonic() + self.settings.stop_grace_period
        while time.monotonic() < deadline:
            if not self._is_alive(key, pid):
                logger.info(f"Process {pid} terminated gracefully")
                return "terminated gracefully"
            time.sleep(POLL_INTERVAL)

        if not self._is_alive(key, pid):
            return "terminated gracefully"

        logger.warning(f"Daemon not responding, sending SIGKILL to {pid}")
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            return "terminated gracefully"

        spawned = self._spawned.get(key)
        if spawned and spawned.pid == pid:
            try:
                spawned.process.wait(timeout=self.settings.stop_grace_period)
            except subprocess.TimeoutExpired:
                logger.warning(f"Process {pid} still present after SIGKILL")
        return "force killed"
