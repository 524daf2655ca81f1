"""Per-daemon context built once at boot and threaded through the runtime."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from topicwatch.config import Settings, TopicConfig, get_settings, get_topic_config
from topicwatch.kinds import DaemonKind, KindProfile, profile_for

from .collaborators import Collaborators, build_collaborators
from .records import CursorStore, LockRecord, PidRecord, RecordPaths


@dataclass
class DaemonContext:
    """Everything a daemon process or a manual run needs for one (topic, kind)."""

    topic: str
    kind: DaemonKind
    topic_config: TopicConfig
    profile: KindProfile
    settings: Settings
    paths: RecordPaths
    collaborators: Collaborators
    parent_pid: int | None = None
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def __post_init__(self) -> None:
        self.pid_record = PidRecord(self.paths.pid)
        self.lock = LockRecord(self.paths.lock)
        self.cursors = CursorStore(self.settings)

    @property
    def label(self) -> str:
        return f"{self.topic}/{self.kind.value}"


def build_context(
    topic: str,
    kind: DaemonKind,
    settings: Settings | None = None,
    collaborators: Collaborators | None = None,
    parent_pid: int | None = None,
) -> DaemonContext:
    """Resolve configuration and collaborators for a (topic, kind) pair.

    Args:
        topic: Topic name
        kind: Daemon kind
        settings: Settings to use (global settings if omitted)
        collaborators: Pre-built collaborators, bypassing the topic's factories
        parent_pid: Controller pid watched for orphan detection

    Raises:
        ConfigMissing: If the topic or its pipeline for ``kind`` is not configured
        CollaboratorError: If a configured collaborator cannot be built
    """
    settings = settings or get_settings()
    topic_config = get_topic_config(topic, settings)
    pipeline = topic_config.pipeline(kind)
    return DaemonContext(
        topic=topic,
        kind=kind,
        topic_config=topic_config,
        profile=profile_for(kind, settings, pipeline.required_fields),
        settings=settings,
        paths=RecordPaths.for_topic(topic, kind, settings),
        collaborators=collaborators or build_collaborators(pipeline),
        parent_pid=parent_pid,
    )
