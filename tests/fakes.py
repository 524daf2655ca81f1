"""In-memory collaborators used by the test suite."""

import asyncio
from typing import Any

from topicwatch.daemon.collaborators import ActionResult, WorkItem


class ListSource:
    """Serves a fixed list of item mappings."""

    def __init__(
        self,
        items: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
        filter_by_cursor: bool = True,
    ) -> None:
        self.items = items or []
        self.error = error
        self.filter_by_cursor = filter_by_cursor
        self.calls: list[int] = []

    def list_items(self, topic: str, kind: str, since_index: int) -> list[dict[str, Any]]:
        self.calls.append(since_index)
        if self.error:
            raise self.error
        if not self.filter_by_cursor:
            return list(self.items)
        return [item for item in self.items if item["index"] > since_index]


class ScriptedDecision:
    """Returns a verdict per text; PASS for texts it does not know."""

    def __init__(self, verdicts: dict[str, Any] | None = None, delay: float = 0.0) -> None:
        self.verdicts = verdicts or {}
        self.delay = delay
        self.seen: list[str] = []

    async def decide(self, item_text: str) -> Any:
        self.seen.append(item_text)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.verdicts.get(item_text, "PASS")


class RecordingAction:
    """Records acted items; fails for configured indexes."""

    def __init__(self, fail_indexes: list[int] | None = None, raise_indexes: list[int] | None = None) -> None:
        self.fail_indexes = set(fail_indexes or [])
        self.raise_indexes = set(raise_indexes or [])
        self.acted: list[int] = []

    def act(self, item: WorkItem) -> ActionResult:
        self.acted.append(item.index)
        if item.index in self.raise_indexes:
            raise RuntimeError(f"delivery exploded for {item.index}")
        if item.index in self.fail_indexes:
            return ActionResult(success=False, detail="delivery failed")
        return ActionResult(success=True, detail=f"posted {item.index}")


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.notified: list[int] = []

    def notify(self, item: WorkItem, result: ActionResult) -> None:
        if self.fail:
            raise ConnectionError("webhook down")
        self.notified.append(item.index)


def item(index: int, text: str = "I love python", **overrides: Any) -> dict[str, Any]:
    """A complete work item mapping."""
    return {
        "index": index,
        "text": text,
        "author": f"user{index}",
        "link": f"https://example.com/status/{index}",
    } | overrides
