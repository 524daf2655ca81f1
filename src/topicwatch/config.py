"""Configuration management using pydantic-settings."""

import json
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigMissing
from .kinds import DaemonKind

# Topic names become file names: alphanumeric start, then alphanumerics, dots,
# underscores and hyphens only
TOPIC_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")

ENV_PREFIX = "TOPICWATCH_"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Locations
    data_dir: Path = Path.home() / ".topicwatch"
    topics_file: Path = Path("topics.json")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Supervision
    orphan_check_interval: float = 30.0
    first_run_delay: float = 3.0  # first cycle fires this long after boot
    stop_grace_period: float = 2.0  # SIGTERM -> SIGKILL window

    # Collaborator call bounds
    decision_timeout: float = 60.0

    # Per-kind cadence (seconds)
    reply_poster_period: float = 300.0
    reply_poster_item_delay: float = 30.0
    alert_monitor_period: float = 120.0
    alert_monitor_item_delay: float = 3.0

    @property
    def run_dir(self) -> Path:
        """Directory holding PID, lock and cursor records."""
        return self.data_dir / "run"

    @property
    def log_dir(self) -> Path:
        """Directory holding per-topic daemon logs."""
        return self.data_dir / "logs"

    @property
    def topics_path(self) -> Path:
        """Absolute path of the topics file."""
        return self.topics_file.expanduser().resolve()

    def ensure_directories(self) -> None:
        """Create all required directories if they don't exist."""
        for dir_path in [self.run_dir, self.log_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

    def to_env(self) -> dict[str, str]:
        """Export settings as environment variables for a spawned daemon.

        Paths are made absolute so the child resolves the same files
        regardless of its working directory.
        """
        env: dict[str, str] = {}
        for name, value in self.model_dump().items():
            if isinstance(value, Path):
                value = value.expanduser().resolve()
            env[f"{ENV_PREFIX}{name.upper()}"] = str(value)
        return env


class CollaboratorSpec(BaseModel):
    """Reference to a collaborator factory plus its keyword options."""

    factory: str = Field(
        pattern=r"^[A-Za-z_][\w.]*:[A-Za-z_][\w.]*$",
        description="'module:attribute' reference to a class or callable",
    )
    options: dict[str, Any] = Field(default_factory=dict)


class PipelineConfig(BaseModel):
    """Collaborators wired into one daemon kind for a topic."""

    work_source: CollaboratorSpec
    decision: CollaboratorSpec
    action: CollaboratorSpec
    notifier: CollaboratorSpec | None = None
    required_fields: list[str] | None = None


class TopicConfig(BaseModel):
    """Configuration of one topic (an independent pipeline instance)."""

    name: str = ""
    pipelines: dict[DaemonKind, PipelineConfig] = Field(default_factory=dict)

    def pipeline(self, kind: DaemonKind) -> PipelineConfig:
        """Get the pipeline for a kind.

        Raises:
            ConfigMissing: If the topic does not configure this kind
        """
        try:
            return self.pipelines[kind]
        except KeyError:
            raise ConfigMissing(
                f"Topic '{self.name}' has no '{kind.value}' pipeline configured"
            ) from None


_TOPICS_ADAPTER = TypeAdapter(dict[str, TopicConfig])


def validate_topic_name(topic: str) -> str:
    """Reject topic names that are unsafe as file-name components.

    Raises:
        ConfigMissing: If the name cannot belong to any configured topic
    """
    if not TOPIC_NAME_PATTERN.match(topic):
        raise ConfigMissing(
            f"Invalid topic name: '{topic}'. Topic names must start with alphanumeric "
            "and contain only alphanumeric characters, dots, underscores, and hyphens."
        )
    return topic


def load_topics(settings: Settings | None = None) -> dict[str, TopicConfig]:
    """Load and validate the topics file.

    Args:
        settings: Settings to read the topics file location from

    Returns:
        Mapping of topic name to its configuration

    Raises:
        ConfigMissing: If the file is missing, unreadable or invalid
    """
    settings = settings or get_settings()
    path = settings.topics_path
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigMissing(f"Topics file not readable: {path} ({e})") from e

    try:
        topics = _TOPICS_ADAPTER.validate_python(json.loads(raw))
    except json.JSONDecodeError as e:
        raise ConfigMissing(f"Topics file is not valid JSON: {path} ({e})") from e
    except PydanticValidationError as e:
        raise ConfigMissing(f"Topics file is invalid: {path} ({e.errors()[0]['msg']})") from e

    for name, topic in topics.items():
        validate_topic_name(name)
        if not topic.name:
            topic.name = name
    return topics


def get_topic_config(topic: str, settings: Settings | None = None) -> TopicConfig:
    """Get the configuration of one topic.

    Raises:
        ConfigMissing: If the topic is not configured
    """
    validate_topic_name(topic)
    topics = load_topics(settings)
    if topic not in topics:
        available = ", ".join(sorted(topics)) or "none"
        raise ConfigMissing(f"Topic '{topic}' not found in configuration (available: {available})")
    return topics[topic]


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


# Global settings instance
settings = Settings()
