"""Filesystem records shared between a daemon and its supervisor.

Every record is scoped by (topic, kind) and stored as plain decimal text:

- PID record: the daemon process that owns the (topic, kind) pair
- Lock record: the process currently executing a processing cycle
- Cursor record: index of the last work item considered

PID and lock records are created with ``O_CREAT | O_EXCL`` so two processes
can never both believe they created the same record. A record whose owner
is dead is stale and may be reclaimed.
"""

import logging
import os
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from topicwatch.config import Settings
from topicwatch.kinds import DaemonKind

logger = logging.getLogger(__name__)

# An empty owner record younger than this is assumed to be mid-write
EMPTY_RECORD_GRACE_SECONDS = 5.0


def is_process_alive(pid: int | None) -> bool:
    """Check if a process with given PID is running.

    Args:
        pid: Process ID to check

    Returns:
        True if the process exists (signal 0 check)
    """
    if pid is None or pid <= 0:
        return False
    try:
        os.kill(pid, 0)  # Signal 0 = check if process exists
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True
    except OSError:
        return False
    return True


def _read_int(path: Path) -> int | None:
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (ValueError, OSError):
        return None


@dataclass(frozen=True)
class RecordPaths:
    """File locations for one (topic, kind) pair."""

    topic: str
    kind: DaemonKind
    pid: Path
    lock: Path
    cursor: Path
    log: Path

    @classmethod
    def for_topic(cls, topic: str, kind: DaemonKind, settings: Settings) -> "RecordPaths":
        stem = f"{topic}_{kind.suffix}"
        return cls(
            topic=topic,
            kind=kind,
            pid=settings.run_dir / f"{stem}.pid",
            lock=settings.run_dir / f"{stem}.lock",
            cursor=settings.run_dir / f"{stem}.cursor",
            log=settings.log_dir / f"{stem}.log",
        )


class OwnerRecord:
    """A create-exclusive file naming the pid that owns it."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> int | None:
        """Read the owner pid.

        Returns:
            PID if the file exists and is valid, None otherwise
        """
        return _read_int(self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def acquire(self, owner: int | None = None) -> bool:
        """Create the record for ``owner``, reclaiming it once if stale.

        Args:
            owner: Owning pid, defaults to the current process

        Returns:
            True if this call created the record
        """
        owner = owner if owner is not None else os.getpid()
        if self._create(owner):
            return True
        if not self.is_stale():
            return False
        logger.info(f"Reclaiming stale record {self.path} (owner {self.read()})")
        if not self._discard_stale():
            return False
        return self._create(owner)

    def release(self, owner: int | None = None) -> bool:
        """Remove the record if ``owner`` still holds it.

        Returns:
            True if the record was removed
        """
        owner = owner if owner is not None else os.getpid()
        if self.read() != owner:
            return False
        return self.remove()

    def remove(self) -> bool:
        """Remove the record unconditionally.

        Returns:
            True if a file was removed
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True

    def is_stale(self) -> bool:
        """Check if the record's owner is gone."""
        pid = self.read()
        if pid is not None:
            return not is_process_alive(pid)
        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age > EMPTY_RECORD_GRACE_SECONDS

    def _discard_stale(self) -> bool:
        """Move a record judged stale out of the way.

        Two reclaimers can both judge the same record stale. The record is
        renamed to a private tombstone and checked again there: if it now
        names a live owner, another reclaimer already replaced it, so it is
        linked back into place and this reclaim backs off. A record created
        by a third process between the rename and the link-back is still
        lost; that window is the rename-to-link gap only.

        Returns:
            True if the path is clear for a new record
        """
        tombstone = self.path.with_name(f".{self.path.name}.{os.getpid()}.{uuid.uuid4().hex}")
        try:
            os.rename(self.path, tombstone)
        except FileNotFoundError:
            return True

        try:
            if OwnerRecord(tombstone).is_stale():
                return True
            logger.info(f"Record {self.path} was reclaimed by another process, backing off")
            try:
                os.link(tombstone, self.path)
            except FileExistsError:
                logger.warning(f"Could not restore {self.path}: a newer record already exists")
            return False
        finally:
            tombstone.unlink(missing_ok=True)

    def _create(self, owner: int) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(str(owner))
        return True


class PidRecord(OwnerRecord):
    """Marks the daemon process owning a (topic, kind) pair."""


class LockRecord(OwnerRecord):
    """Marks that a processing cycle is in flight for a (topic, kind) pair."""


class CursorStore:
    """Persisted per-(topic, kind) progress index.

    Writes go through a temporary file and an atomic rename, so a crash
    mid-write leaves the previous value intact.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def path_for(self, topic: str, kind: DaemonKind) -> Path:
        return RecordPaths.for_topic(topic, kind, self.settings).cursor

    def get(self, topic: str, kind: DaemonKind) -> int:
        """Get the cursor, defaulting to 0 when absent or unparsable."""
        value = _read_int(self.path_for(topic, kind))
        if value is None or value < 0:
            return 0
        return value

    def set(self, topic: str, kind: DaemonKind, value: int) -> None:
        """Persist the cursor synchronously.

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError(f"Cursor must be non-negative, got {value}")
        path = self.path_for(topic, kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(str(value))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def advance(self, topic: str, kind: DaemonKind, value: int) -> int:
        """Move the cursor forward to ``value``, never backwards.

        Returns:
            The cursor value after the call
        """
        current = self.get(topic, kind)
        if value <= current:
            return current
        self.set(topic, kind, value)
        return value
