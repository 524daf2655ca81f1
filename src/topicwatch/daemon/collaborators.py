"""Narrow interfaces to the collaborators a processing cycle drives.

A pipeline is wired from four collaborators, each configured as a
``"module:attribute"`` factory reference plus keyword options:

- work source: lists candidate items after a cursor index
- content decision: PASS/FAIL verdict on an item's text
- action: the side-effecting operation (e.g. post a reply)
- notifier: best-effort report of a successful action

Collaborators may be synchronous or asynchronous; ``call`` awaits either.
"""

import importlib
import inspect
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from topicwatch.config import CollaboratorSpec, PipelineConfig
from topicwatch.exceptions import CollaboratorError


@dataclass
class WorkItem:
    """A candidate item produced by a work source."""

    index: int  # position in the source, 1-based
    text: str | None = None
    author: str | None = None
    link: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], default_index: int | None = None) -> "WorkItem":
        """Build an item from a plain mapping (e.g. a spreadsheet row).

        Args:
            data: Item fields, ``index`` included when the source knows it
            default_index: Index used when the mapping carries none

        Raises:
            ValueError: If the mapping has no index and no default is given
        """
        if "index" not in data and default_index is None:
            raise ValueError(f"Work item has no index: {dict(data)!r}")
        known = {"index", "text", "author", "link"}
        return cls(
            index=int(data["index"]) if "index" in data else default_index,
            text=data.get("text"),
            author=data.get("author"),
            link=data.get("link"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def get(self, name: str) -> Any:
        if name in ("index", "text", "author", "link"):
            return getattr(self, name)
        return self.extra.get(name)

    def missing_fields(self, required: tuple[str, ...]) -> list[str]:
        """Names of required fields that are absent or blank."""
        missing = []
        for name in required:
            value = self.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "text": self.text,
            "author": self.author,
            "link": self.link,
            **self.extra,
        }


@dataclass(frozen=True)
class Decision:
    """Verdict of the content-decision collaborator."""

    passed: bool
    reason: str | None = None

    @classmethod
    def coerce(cls, value: Any) -> "Decision":
        """Normalize a collaborator's return value.

        Accepts a Decision, a bool, or the strings "PASS"/"FAIL[: reason]".
        """
        if isinstance(value, Decision):
            return value
        if isinstance(value, bool):
            return cls(passed=value, reason=None if value else "rejected")
        if isinstance(value, str):
            verdict, _, reason = value.strip().partition(":")
            if verdict.strip().upper() == "PASS":
                return cls(passed=True)
            return cls(passed=False, reason=reason.strip() or value.strip() or "rejected")
        return cls(passed=False, reason=f"unrecognized decision {value!r}")


@dataclass(frozen=True)
class ActionResult:
    """Outcome of the action collaborator."""

    success: bool
    detail: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any) -> "ActionResult":
        if isinstance(value, ActionResult):
            return value
        return cls(success=bool(value))


@runtime_checkable
class WorkSource(Protocol):
    def list_items(self, topic: str, kind: str, since_index: int) -> Any: ...


@runtime_checkable
class ContentDecision(Protocol):
    def decide(self, item_text: str) -> Any: ...


@runtime_checkable
class Action(Protocol):
    def act(self, item: WorkItem) -> Any: ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, item: WorkItem, result: ActionResult) -> Any: ...


@dataclass
class Collaborators:
    """The collaborators wired into one (topic, kind) pipeline."""

    work_source: WorkSource
    decision: ContentDecision
    action: Action
    notifier: Notifier | None = None


async def call(func: Any, *args: Any) -> Any:
    """Invoke a sync or async collaborator method and return its result."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def load_factory(reference: str) -> Any:
    """Resolve a ``"module:attribute"`` reference.

    Raises:
        CollaboratorError: If the module or attribute cannot be found
    """
    module_name, _, attr_path = reference.partition(":")
    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise CollaboratorError(f"Cannot import collaborator module '{module_name}': {e}") from e
    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError:
            raise CollaboratorError(f"'{reference}' does not exist") from None
    return target


def build(spec: CollaboratorSpec, protocol: type) -> Any:
    """Instantiate one collaborator from its spec.

    Raises:
        CollaboratorError: If construction fails or the result lacks the protocol method
    """
    factory = load_factory(spec.factory)
    try:
        instance = factory(**spec.options)
    except Exception as e:
        raise CollaboratorError(f"Failed to build '{spec.factory}': {e}") from e
    if not isinstance(instance, protocol):
        raise CollaboratorError(
            f"'{spec.factory}' does not implement {protocol.__name__}"
        )
    return instance


def build_collaborators(pipeline: PipelineConfig) -> Collaborators:
    """Instantiate all collaborators of a pipeline."""
    return Collaborators(
        work_source=build(pipeline.work_source, WorkSource),
        decision=build(pipeline.decision, ContentDecision),
        action=build(pipeline.action, Action),
        notifier=build(pipeline.notifier, Notifier) if pipeline.notifier else None,
    )
