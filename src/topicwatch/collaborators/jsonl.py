"""Work source backed by a JSON-lines file.

Each non-blank line is one item object with ``text``, ``author``, ``link``
and any extra fields. The item index is the 1-based line number, so the
cursor maps directly onto the file like a spreadsheet row number.
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonlWorkSource:
    """Lists items appended to a JSON-lines file."""

    def __init__(self, path: str) -> None:
        """Initialize the work source.

        Args:
            path: File path; ``{topic}`` and ``{kind}`` placeholders are filled per call
        """
        self.path = path

    def resolve(self, topic: str, kind: str) -> Path:
        return Path(self.path.format(topic=topic, kind=kind)).expanduser()

    def list_items(self, topic: str, kind: str, since_index: int) -> list[dict[str, Any]]:
        """Items whose line number is greater than ``since_index``.

        Raises:
            OSError: If the file cannot be read
            ValueError: If a line after the cursor is not a JSON object
        """
        path = self.resolve(topic, kind)
        if not path.exists():
            logger.info(f"No work file yet at {path}")
            return []

        items: list[dict[str, Any]] = []
        with path.open(encoding="utf-8") as fh:
            for number, line in enumerate(fh, start=1):
                if number <= since_index or not line.strip():
                    continue
                data = json.loads(line)
                if not isinstance(data, dict):
                    raise ValueError(f"{path}:{number} is not a JSON object")
                items.append({**data, "index": number})
        return items
