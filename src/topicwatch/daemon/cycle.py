"""The checkpointed, single-flight processing cycle.

One cycle:

1. Acquires the (topic, kind) lock record, or returns at once if another
   cycle holds it (no queueing, the next tick retries).
2. Lists work items after the persisted cursor.
3. Handles items in ascending index order, advancing the cursor after every
   item whatever its outcome, so a failing item never stalls progress.
4. Releases the lock record, including when listing fails.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .collaborators import ActionResult, Decision, WorkItem, call
from .context import DaemonContext

logger = logging.getLogger(__name__)


class CycleStatus(Enum):
    """How a cycle ended."""

    COMPLETED = "completed"
    BUSY = "busy"  # another cycle held the lock
    ABORTED = "aborted"  # could not list items, cursor untouched


class ItemOutcome(Enum):
    """What happened to one work item."""

    INCOMPLETE = "incomplete"  # required fields missing
    REJECTED = "rejected"  # content decision did not pass
    ACTED = "acted"
    ACTION_FAILED = "action_failed"
    ERRORED = "errored"  # exception while handling

    @property
    def skipped(self) -> bool:
        return self in (ItemOutcome.INCOMPLETE, ItemOutcome.REJECTED)


@dataclass
class ItemReport:
    index: int
    outcome: ItemOutcome
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "outcome": self.outcome.value, "reason": self.reason}


@dataclass
class CycleReport:
    """Summary of one cycle execution."""

    topic: str
    kind: str
    status: CycleStatus
    start_cursor: int | None = None
    end_cursor: int | None = None
    items: list[ItemReport] = field(default_factory=list)
    notifications: int = 0
    error: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    def count(self, outcome: ItemOutcome) -> int:
        return sum(1 for item in self.items if item.outcome is outcome)

    def summary(self) -> str:
        """One-line human readable summary."""
        if self.status is CycleStatus.BUSY:
            return f"Already processing {self.topic}/{self.kind}, skipped"
        if self.status is CycleStatus.ABORTED:
            return f"Cycle aborted for {self.topic}/{self.kind}: {self.error}"
        return (
            f"Processed {len(self.items)} items for {self.topic}/{self.kind} "
            f"(acted {self.count(ItemOutcome.ACTED)}, "
            f"failed {self.count(ItemOutcome.ACTION_FAILED) + self.count(ItemOutcome.ERRORED)}, "
            f"skipped {sum(1 for i in self.items if i.outcome.skipped)}); "
            f"cursor {self.start_cursor} -> {self.end_cursor}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "kind": self.kind,
            "status": self.status.value,
            "start_cursor": self.start_cursor,
            "end_cursor": self.end_cursor,
            "items": [item.to_dict() for item in self.items],
            "notifications": self.notifications,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class ProcessingCycle:
    """Runs one resumable pass over a (topic, kind) work source."""

    def __init__(self, ctx: DaemonContext) -> None:
        self.ctx = ctx

    async def run(self) -> CycleReport:
        ctx = self.ctx
        report = CycleReport(topic=ctx.topic, kind=ctx.kind.value, status=CycleStatus.COMPLETED)

        if not ctx.lock.acquire():
            logger.info(f"Already processing {ctx.label}, skipping...")
            report.status = CycleStatus.BUSY
            report.finished_at = datetime.now()
            return report

        try:
            await self._run_locked(report)
        finally:
            ctx.lock.release()
            report.finished_at = datetime.now()
        return report

    async def _run_locked(self, report: CycleReport) -> None:
        ctx = self.ctx
        cursor = ctx.cursors.get(ctx.topic, ctx.kind)
        report.start_cursor = report.end_cursor = cursor
        logger.info(f"Starting cycle for {ctx.label} at cursor {cursor}")

        try:
            items = await self._list_items(cursor)
        except Exception as e:
            logger.exception(f"Failed to list items for {ctx.label}; cursor stays at {cursor}")
            report.status = CycleStatus.ABORTED
            report.error = str(e) or type(e).__name__
            return

        logger.info(f"Found {len(items)} candidate items for {ctx.label}")

        for item in items:
            if item.index <= cursor:
                logger.warning(f"Item {item.index} is at or before cursor {cursor}, ignoring")
                continue

            item_report, result = await self._handle(item)
            report.items.append(item_report)

            # Advance regardless of outcome before touching the next item
            cursor = ctx.cursors.advance(ctx.topic, ctx.kind, item.index)
            report.end_cursor = cursor

            if item_report.outcome is ItemOutcome.ACTED and result is not None:
                if await self._notify(item, result):
                    report.notifications += 1

            if item_report.outcome is not ItemOutcome.INCOMPLETE:
                await ctx.sleep(ctx.profile.item_delay)

        logger.info(f"Cycle completed for {ctx.label}: cursor {report.start_cursor} -> {cursor}")

    async def _list_items(self, cursor: int) -> list[WorkItem]:
        """List items after ``cursor``, in ascending index order.

        Rows without an index are numbered by listing position, continuing
        from the cursor.
        """
        ctx = self.ctx
        raw = await call(
            ctx.collaborators.work_source.list_items, ctx.topic, ctx.kind.value, cursor
        )
        items = [
            i if isinstance(i, WorkItem) else WorkItem.from_mapping(i, default_index=cursor + position)
            for position, i in enumerate(raw or [], start=1)
        ]
        return sorted(items, key=lambda i: i.index)

    async def _handle(self, item: WorkItem) -> tuple[ItemReport, ActionResult | None]:
        ctx = self.ctx
        try:
            missing = item.missing_fields(ctx.profile.required_fields)
            if missing:
                reason = f"missing required fields {', '.join(missing)}"
                logger.info(f"Item {item.index} skipped: {reason}")
                return ItemReport(item.index, ItemOutcome.INCOMPLETE, reason), None

            text = item.text or ""
            preview = text if len(text) <= 100 else f"{text[:100]}..."
            logger.info(f"Item {item.index} by {item.author}: {preview!r}")

            decision = await self._decide(item)
            if not decision.passed:
                reason = f"rejected by content decision ({decision.reason})"
                logger.info(f"Item {item.index} skipped: {reason}")
                return ItemReport(item.index, ItemOutcome.REJECTED, reason), None

            result = ActionResult.coerce(await call(ctx.collaborators.action.act, item))
            if result.success:
                logger.info(f"Item {item.index} action succeeded: {item.link}")
                return ItemReport(item.index, ItemOutcome.ACTED, result.detail), result

            logger.warning(f"Item {item.index} action failed: {result.detail or item.link}")
            return ItemReport(item.index, ItemOutcome.ACTION_FAILED, result.detail), result
        except Exception as e:
            logger.exception(f"Item {item.index} failed with an error, advancing past it")
            return ItemReport(item.index, ItemOutcome.ERRORED, str(e) or type(e).__name__), None

    async def _decide(self, item: WorkItem) -> Decision:
        timeout = self.ctx.settings.decision_timeout
        try:
            verdict = await asyncio.wait_for(
                call(self.ctx.collaborators.decision.decide, item.text or ""), timeout
            )
        except TimeoutError:
            return Decision(passed=False, reason=f"decision timed out after {timeout:g}s")
        return Decision.coerce(verdict)

    async def _notify(self, item: WorkItem, result: ActionResult) -> bool:
        notifier = self.ctx.collaborators.notifier
        if notifier is None:
            return False
        try:
            await call(notifier.notify, item, result)
        except Exception as e:
            logger.warning(f"Notification failed for item {item.index}: {e}")
            return False
        return True


async def run_cycle(ctx: DaemonContext) -> CycleReport:
    """Run one processing cycle for a context."""
    return await ProcessingCycle(ctx).run()
