"""Daemon kinds and their per-kind scheduling profile."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Settings

DEFAULT_REQUIRED_FIELDS: tuple[str, ...] = ("text", "author", "link")


class DaemonKind(Enum):
    """Worker roles sharing the supervision pattern."""

    REPLY_POSTER = "reply-poster"
    ALERT_MONITOR = "alert-monitor"

    @property
    def suffix(self) -> str:
        """File-naming namespace for this kind's records and log."""
        return _SUFFIXES[self]


_SUFFIXES = {
    DaemonKind.REPLY_POSTER: "reply",
    DaemonKind.ALERT_MONITOR: "monitor",
}


@dataclass(frozen=True)
class KindProfile:
    """Timing and validation knobs for one daemon kind."""

    kind: DaemonKind
    period: float  # seconds between scheduled cycles
    item_delay: float  # pause after each item that reached the collaborators
    required_fields: tuple[str, ...] = DEFAULT_REQUIRED_FIELDS


def profile_for(
    kind: DaemonKind,
    settings: "Settings",
    required_fields: list[str] | None = None,
) -> KindProfile:
    """Build the profile for a kind from settings.

    Args:
        kind: Daemon kind
        settings: Effective settings
        required_fields: Optional per-topic override of the required item fields

    Returns:
        KindProfile for the kind
    """
    fields = tuple(required_fields) if required_fields else DEFAULT_REQUIRED_FIELDS
    if kind is DaemonKind.REPLY_POSTER:
        return KindProfile(
            kind=kind,
            period=settings.reply_poster_period,
            item_delay=settings.reply_poster_item_delay,
            required_fields=fields,
        )
    return KindProfile(
        kind=kind,
        period=settings.alert_monitor_period,
        item_delay=settings.alert_monitor_item_delay,
        required_fields=fields,
    )
