"""Supervised per-topic daemons.

This module provides:
- Filesystem records (PID, lock, cursor) shared by daemons and supervisors
- The checkpointed, single-flight processing cycle
- The daemon runtime run inside each spawned worker process
- The supervisor used by controllers to start, stop and check daemons

Architecture:
    ┌──────────────┐  signals / records   ┌──────────────────────────────┐
    │  Supervisor  │ ───────────────────▶ │  Daemon runtime (per topic,  │
    │ (HTTP, chat, │                      │  kind): ticker, orphan watch │
    │   or CLI)    │ ◀── PID / lock files │        │                     │
    └──────────────┘                      │        ▼                     │
                                          │  ProcessingCycle ── cursor   │
                                          │        │                     │
                                          │        ▼                     │
                                          │  Collaborators (source,      │
                                          │  decision, action, notifier) │
                                          └──────────────────────────────┘
"""

from .collaborators import ActionResult, Collaborators, Decision, WorkItem
from .context import DaemonContext, build_context
from .cycle import CycleReport, CycleStatus, ItemOutcome, ProcessingCycle, run_cycle
from .logs import LogEntry, read_logs
from .records import CursorStore, LockRecord, PidRecord, RecordPaths, is_process_alive
from .runtime import CycleTicker, DaemonRuntime, DaemonState, process_once, run_daemon, stop_daemon
from .supervisor import OperationResult, StatusResult, Supervisor

__all__ = [
    # Records
    "CursorStore",
    "LockRecord",
    "PidRecord",
    "RecordPaths",
    "is_process_alive",
    # Collaborators
    "ActionResult",
    "Collaborators",
    "Decision",
    "WorkItem",
    # Cycle
    "CycleReport",
    "CycleStatus",
    "ItemOutcome",
    "ProcessingCycle",
    "run_cycle",
    # Runtime
    "CycleTicker",
    "DaemonContext",
    "DaemonRuntime",
    "DaemonState",
    "build_context",
    "process_once",
    "run_daemon",
    "stop_daemon",
    # Supervisor
    "LogEntry",
    "OperationResult",
    "StatusResult",
    "Supervisor",
    "read_logs",
]
