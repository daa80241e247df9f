"""Schedule store backed by a single JSONL snapshot file.

The whole pending set is rewritten on every mutation (tempfile + fsync +
os.replace), so the file is always either the old or the new snapshot.
Write cost is O(pending schedules), which is fine at chat-bot scale.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from courier.scheduling.errors import StoreIOError, StoreLockedError
from courier.scheduling.types import Schedule

logger = logging.getLogger(__name__)


class ScheduleStore:
    """Durable snapshot of all pending schedules.

    Only the engine's control path may mutate a store; ``locked()`` extends
    that single-writer rule across processes.

    Example:
        store = ScheduleStore(Path("~/.courier/schedules.jsonl"))
        with store.locked():
            store.load()
            store.insert(schedule)
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()
        self._entries: dict[str, Schedule] = {}

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, schedule_id: object) -> bool:
        return schedule_id in self._entries

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, schedule_id: str) -> Schedule | None:
        return self._entries.get(schedule_id)

    def entries(self) -> list[Schedule]:
        """All pending schedules in file order."""
        return list(self._entries.values())

    def load(self, *, quarantine: bool = True) -> list[Schedule]:
        """Replace the in-memory snapshot with the file contents.

        A missing file is an empty set. A malformed file is logged and
        treated as empty; this never raises. With ``quarantine`` it is also
        moved aside, which only the lock holder should do.
        """
        if not self._path.exists():
            self._entries = {}
            logger.debug("schedule_store_missing", extra={"file.path": str(self._path)})
            return []

        try:
            entries = self._read()
        except (OSError, UnicodeDecodeError, ValueError) as e:
            logger.error(
                "schedule_store_corrupt",
                extra={"file.path": str(self._path), "error.message": str(e)},
            )
            if quarantine:
                self._quarantine()
            self._entries = {}
            return []

        self._entries = entries
        logger.info(
            "schedule_store_loaded",
            extra={"file.path": str(self._path), "schedule.count": len(entries)},
        )
        return list(entries.values())

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def persist(self, snapshot: Iterable[Schedule] | None = None) -> None:
        """Rewrite the file from the current set, or from ``snapshot``.

        A given snapshot becomes the in-memory set once it is on disk.

        Raises:
            StoreIOError: If the write fails; memory is left unchanged.
        """
        if snapshot is None:
            entries = self._entries
        else:
            entries = {}
            for schedule in snapshot:
                if schedule.id in entries:
                    raise ValueError(f"duplicate schedule id: {schedule.id}")
                entries[schedule.id] = schedule

        self._write(entries.values())
        self._entries = dict(entries)

    def insert(self, schedule: Schedule) -> None:
        """Add a schedule and persist.

        Raises:
            ValueError: If the id is already pending.
            StoreIOError: If the write fails (the insert is rolled back).
        """
        if schedule.id in self._entries:
            raise ValueError(f"schedule {schedule.id} already exists")

        self._entries[schedule.id] = schedule
        try:
            self._write(self._entries.values())
        except StoreIOError:
            del self._entries[schedule.id]
            raise

    def remove(self, schedule_id: str) -> Schedule | None:
        """Remove a schedule and persist. Unknown ids return None untouched.

        Raises:
            StoreIOError: If the write fails (the removal is rolled back).
        """
        if schedule_id not in self._entries:
            return None

        previous = dict(self._entries)
        removed = self._entries.pop(schedule_id)
        try:
            self._write(self._entries.values())
        except StoreIOError:
            # Restore previous ordering as well as membership
            self._entries = previous
            raise
        return removed

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the exclusive writer lock for this store file.

        Raises:
            StoreLockedError: If another process holds the lock.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self.lock_path.open("a+") as lockf:
            try:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as e:
                raise StoreLockedError(
                    f"Schedule store {self._path} is in use by another process"
                ) from e
            try:
                yield
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, Schedule]:
        entries: dict[str, Schedule] = {}
        with self._path.open(encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    if not isinstance(data, dict):
                        raise ValueError("record is not an object")
                    schedule = Schedule.from_dict(data)
                except (RecursionError, ValueError) as e:
                    raise ValueError(f"line {line_no}: {e}") from e

                if schedule.id in entries:
                    logger.warning(
                        "schedule_store_duplicate_id",
                        extra={"schedule.id": schedule.id, "file.line_no": line_no},
                    )
                    continue
                entries[schedule.id] = schedule
        return entries

    def _write(self, schedules: Iterable[Schedule]) -> None:
        """Write the snapshot atomically; an empty snapshot removes the file."""
        records = [schedule.to_json_line() for schedule in schedules]
        try:
            if not records:
                self._path.unlink(missing_ok=True)
                return
            _write_lines_atomic(self._path, records)
        except OSError as e:
            logger.error(
                "schedule_store_write_failed",
                extra={"file.path": str(self._path), "error.message": str(e)},
            )
            raise StoreIOError(f"Failed to write {self._path}: {e}") from e

    def _quarantine(self) -> None:
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        target = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
        try:
            self._path.replace(target)
        except OSError as e:
            logger.warning(
                "schedule_store_quarantine_failed",
                extra={"file.path": str(self._path), "error.message": str(e)},
            )
            return
        logger.warning(
            "schedule_store_quarantined",
            extra={"file.path": str(self._path), "file.quarantine": str(target)},
        )


def _write_lines_atomic(path: Path, lines: list[str]) -> None:
    """Write lines atomically via tempfile + fsync + os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line)
                f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        Path(tmp).replace(path)
    except BaseException:
        try:
            Path(tmp).unlink()
        except OSError:
            pass
        raise
