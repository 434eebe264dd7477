"""
Read-After-Write Consistency Router

Remembers when records were written and sends reads for them to the
primary store until the consistency window has passed. Everything else
goes to the replica.

This only lowers the chance of a stale replica read. It never blocks or
delays a read, and losing its state (process restart) is harmless.

The map is per process. A horizontally scaled API would need a shared
store behind the same interface.
"""
import logging
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from core.database import ReplicaSessionLocal, SessionLocal

from .constants import ReadTarget

logger = logging.getLogger(__name__)


class ReadAfterWriteRouter:
    """
    Capacity-bounded map of record id -> write time.

    Usage:
        router.record_write(program.id)
        router.route_read(program.id)  # ReadTarget.PRIMARY inside the window

    Expired entries are swept lazily, at most once per `sweep_interval_s`,
    from whichever call comes next. Thread-safe.
    """

    def __init__(
        self,
        window_s: float = 60.0,
        max_entries: int = 1000,
        sweep_interval_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.window_s = window_s
        self.max_entries = max_entries
        self.sweep_interval_s = sweep_interval_s
        self._clock = clock
        self._writes: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()
        self._last_sweep = clock()

        self._primary_reads = 0
        self._replica_reads = 0
        self._evicted = 0
        self._expired = 0

    @classmethod
    def from_settings(cls) -> "ReadAfterWriteRouter":
        return cls(
            window_s=settings.READ_AFTER_WRITE_WINDOW_S,
            max_entries=settings.READ_AFTER_WRITE_MAX_ENTRIES,
            sweep_interval_s=settings.READ_AFTER_WRITE_SWEEP_INTERVAL_S,
        )

    @staticmethod
    def _key(record_id: Any) -> str:
        return str(record_id)

    def record_write(self, record_id: Any) -> None:
        """Register a confirmed write. The newest write wins."""
        key = self._key(record_id)
        with self._lock:
            now = self._clock()
            self._writes.pop(key, None)
            self._writes[key] = now
            while len(self._writes) > self.max_entries:
                self._writes.popitem(last=False)
                self._evicted += 1
            self._maybe_sweep_locked(now)

    def record_remote_write(self, record_id: Any, age_s: float) -> bool:
        """
        Register a write confirmed by another process (the worker), seen
        here `age_s` seconds after it happened. Ignored once outside the
        window. Returns True if the record is now tracked.
        """
        if age_s >= self.window_s:
            return False
        key = self._key(record_id)
        with self._lock:
            now = self._clock()
            written_at = now - max(age_s, 0.0)
            if self._writes.get(key, float("-inf")) >= written_at:
                return True
            self._writes.pop(key, None)
            self._writes[key] = written_at
            while len(self._writes) > self.max_entries:
                self._writes.popitem(last=False)
                self._evicted += 1
            return True

    def route_read(self, record_id: Any) -> ReadTarget:
        key = self._key(record_id)
        with self._lock:
            now = self._clock()
            self._maybe_sweep_locked(now)
            written_at = self._writes.get(key)
            if written_at is not None and now - written_at < self.window_s:
                self._primary_reads += 1
                return ReadTarget.PRIMARY
            if written_at is not None:
                del self._writes[key]
                self._expired += 1
            self._replica_reads += 1
            return ReadTarget.REPLICA

    def mark_replicated(self, record_id: Any) -> None:
        """Forget a record early, e.g. once it has been seen on the replica."""
        with self._lock:
            self._writes.pop(self._key(record_id), None)

    def sweep(self) -> int:
        """Drop every entry older than the window. Returns the number removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _maybe_sweep_locked(self, now: float) -> None:
        if now - self._last_sweep >= self.sweep_interval_s:
            self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        removed = 0
        # Insertion order approximates write order; stragglers expire on their next read
        while self._writes:
            key, written_at = next(iter(self._writes.items()))
            if now - written_at < self.window_s:
                break
            del self._writes[key]
            removed += 1
        self._expired += removed
        self._last_sweep = now
        if removed:
            logger.debug(f"Read-after-write sweep removed {removed} entries")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._writes.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._writes)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "tracked": len(self._writes),
                "max_entries": self.max_entries,
                "window_s": self.window_s,
                "primary_reads": self._primary_reads,
                "replica_reads": self._replica_reads,
                "evicted": self._evicted,
                "expired": self._expired,
            }


# Process-wide router shared by the API and in-process job execution
read_after_write_router = ReadAfterWriteRouter.from_settings()


def get_router() -> ReadAfterWriteRouter:
    """FastAPI dependency."""
    return read_after_write_router


def get_read_session(
    record_id: Any,
    router: Optional[ReadAfterWriteRouter] = None,
    primary_factory: sessionmaker = SessionLocal,
    replica_factory: sessionmaker = ReplicaSessionLocal,
) -> Session:
    """
    Open a session on whichever store should serve a read of `record_id`.

    Caller closes the session.
    """
    router = router or read_after_write_router
    target = router.route_read(record_id)
    if target == ReadTarget.PRIMARY:
        return primary_factory()
    return replica_factory()


@contextmanager
def read_session(record_id: Any, router: Optional[ReadAfterWriteRouter] = None) -> Iterator[Session]:
    """
    Usage:
        with read_session(program_id) as db:
            program = db.get(TrainingProgram, program_id)
    """
    db = get_read_session(record_id, router)
    try:
        yield db
    finally:
        db.close()
