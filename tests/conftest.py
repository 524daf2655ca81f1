"""Shared test fixtures for topicwatch."""

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from fakes import ListSource, RecordingAction, RecordingNotifier, ScriptedDecision

from topicwatch.config import Settings
from topicwatch.daemon.collaborators import Collaborators
from topicwatch.daemon.context import DaemonContext, build_context
from topicwatch.kinds import DaemonKind

SOURCE = "topicwatch.collaborators.jsonl:JsonlWorkSource"
DECISION = "topicwatch.collaborators.keywords:KeywordDecision"
ACTION = "fakes:RecordingAction"


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Create a Settings instance rooted in a temporary directory."""
    defaults: dict[str, Any] = {
        "data_dir": tmp_path / "data",
        "topics_file": tmp_path / "topics.json",
        "first_run_delay": 0.0,
        "orphan_check_interval": 0.05,
        "stop_grace_period": 1.0,
        "reply_poster_item_delay": 0.0,
        "alert_monitor_item_delay": 0.0,
    }
    return Settings(**(defaults | overrides))


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers the CLI installs on the topicwatch logger."""
    yield
    logger = logging.getLogger("topicwatch")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def pipeline(work_file: Path, **overrides: Any) -> dict[str, Any]:
    """A pipeline entry for the topics file."""
    return {
        "work_source": {"factory": SOURCE, "options": {"path": str(work_file)}},
        "decision": {"factory": DECISION, "options": {"keywords": ["python"]}},
        "action": {"factory": ACTION},
    } | overrides


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with data under tmp_path and no item delays."""
    settings = make_settings(tmp_path)
    settings.ensure_directories()
    return settings


@pytest.fixture
def work_file(tmp_path: Path) -> Path:
    return tmp_path / "items.jsonl"


@pytest.fixture
def write_topics(settings: Settings) -> Callable[[dict[str, Any]], Path]:
    """Write a topics file for the settings fixture."""

    def _write(topics: dict[str, Any]) -> Path:
        settings.topics_file.write_text(json.dumps(topics))
        return settings.topics_file

    return _write


@pytest.fixture
def demo_topics(write_topics, work_file: Path) -> Path:
    """Topic 'demo' with both daemon kinds configured."""
    return write_topics(
        {
            "demo": {
                "pipelines": {
                    "reply-poster": pipeline(work_file),
                    "alert-monitor": pipeline(work_file),
                }
            },
            "reply-only": {"pipelines": {"reply-poster": pipeline(work_file)}},
        }
    )


@pytest.fixture
def make_context(settings: Settings, demo_topics: Path) -> Callable[..., DaemonContext]:
    """Build a demo reply-poster context wired to in-memory collaborators."""

    def _make(
        items: list[dict[str, Any]] | None = None,
        source: ListSource | None = None,
        decision: ScriptedDecision | None = None,
        action: RecordingAction | None = None,
        notifier: RecordingNotifier | None = None,
        kind: DaemonKind = DaemonKind.REPLY_POSTER,
        parent_pid: int | None = None,
    ) -> DaemonContext:
        collaborators = Collaborators(
            work_source=source or ListSource(items),
            decision=decision or ScriptedDecision(),
            action=action or RecordingAction(),
            notifier=notifier,
        )
        return build_context("demo", kind, settings, collaborators=collaborators, parent_pid=parent_pid)

    return _make

