"""Reading and classifying per-topic daemon logs."""

import logging
import re
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SUCCESS_MARKERS = ("action succeeded", "Cycle completed", "Daemon running")
ERROR_MARKERS = (" - ERROR - ", " - CRITICAL - ", "action failed", "Failed", "Traceback", "Error")

# Prefix written by LOG_FORMAT, e.g. "2026-10-17 09:30:00,123 - topicwatch..."
_TIMESTAMP = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}),(\d{3})")


@dataclass
class LogEntry:
    """One line of a daemon log."""

    message: str
    classification: str  # "success", "error" or ""
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "classification": self.classification,
            "timestamp": self.timestamp,
        }


def classify(line: str) -> str:
    """Tag a log line as success, error, or neither by marker scan."""
    if any(marker in line for marker in SUCCESS_MARKERS):
        return "success"
    if any(marker in line for marker in ERROR_MARKERS):
        return "error"
    return ""


def parse_timestamp(line: str) -> str | None:
    """Extract the ISO timestamp of a formatted log line, if present."""
    match = _TIMESTAMP.match(line)
    if not match:
        return None
    try:
        parsed = datetime.strptime(match.group(1), "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None
    return parsed.replace(microsecond=int(match.group(2)) * 1000).isoformat()


def read_logs(log_file: Path, lines: int = 50) -> list[LogEntry]:
    """Return the last ``lines`` non-empty lines of a log file.

    Lines without a parsable prefix (e.g. traceback continuation lines) are
    stamped with the read time.
    """
    if lines <= 0 or not log_file.exists():
        return []

    try:
        with log_file.open(encoding="utf-8", errors="replace") as fh:
            recent = deque((line.rstrip("\n") for line in fh if line.strip()), maxlen=lines)
    except OSError as e:
        logger.error(f"Error reading log {log_file}: {e}")
        return []

    now = datetime.now().isoformat()
    return [
        LogEntry(message=line, classification=classify(line), timestamp=parse_timestamp(line) or now)
        for line in recent
    ]
