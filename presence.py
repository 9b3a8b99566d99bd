"""In-memory student presence, independent of anything persisted."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

FOCUSED_STATUSES = frozenset({"actief", "active"})
DEFAULT_STATUS = "non-actief"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Presence:
    status: str
    focused: bool
    last_seen: datetime


class PresenceTracker:
    """Latest reported status per student id.

    Entries are overwritten on every update and lost on restart. When
    ``timeout_seconds`` is positive an entry older than that reads as offline.
    """

    def __init__(self, timeout_seconds: float = 0, clock: Callable[[], datetime] = _utcnow) -> None:
        self._entries: dict[str, Presence] = {}
        self._lock = threading.Lock()
        self._timeout = timedelta(seconds=timeout_seconds) if timeout_seconds and timeout_seconds > 0 else None
        self._clock = clock

    def update(self, leerling_id, status) -> Presence:
        raw = str(status) if status else DEFAULT_STATUS
        entry = Presence(
            status=raw,
            focused=raw.strip().lower() in FOCUSED_STATUSES,
            last_seen=self._clock(),
        )
        with self._lock:
            self._entries[str(leerling_id)] = entry
        return entry

    def get(self, leerling_id) -> Presence | None:
        with self._lock:
            return self._entries.get(str(leerling_id))

    def forget(self, leerling_id) -> None:
        with self._lock:
            self._entries.pop(str(leerling_id), None)

    def is_stale(self, entry: Presence) -> bool:
        if self._timeout is None:
            return False
        return self._clock() - entry.last_seen > self._timeout

    def view(self, leerling_id) -> dict:
        """Presence fields attached to a roster entry."""
        entry = self.get(leerling_id)
        if entry is None:
            return {"online": False, "focused": False, "last_seen": None}
        if self.is_stale(entry):
            return {"online": False, "focused": False, "last_seen": entry.last_seen.isoformat()}
        return {"online": True, "focused": entry.focused, "last_seen": entry.last_seen.isoformat()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
