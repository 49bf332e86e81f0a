"""Per-user quick context for follow-up resolution.

The cache remembers the last resolved intent, parameters and task for each user. Entries older than
the TTL are treated as absent and are evicted on the next write. The cache is a service object: the
composition root creates one per process and tests call `reset()` (or build their own with an
injected clock).
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic

from src.intent.schema import Intent, Parameters
from src.routing.schema import Task

DEFAULT_TTL_S = 300.0


@dataclass(frozen=True)
class QuickContext:
    """The last resolved turn for one user."""

    intent: Intent
    parameters: Parameters
    task: Task
    question: str
    stored_at: float


class QuickContextCache:
    """Lock-protected map of user id -> `QuickContext` with expiry."""

    def __init__(self, *, ttl_s: float = DEFAULT_TTL_S, clock: Callable[[], float] = monotonic) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, QuickContext] = {}
        self._lock = threading.Lock()

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def get(self, user_id: str) -> QuickContext | None:
        """Return the fresh entry for `user_id`, dropping it if it has expired."""

        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > self._ttl_s:
                del self._entries[user_id]
                return None
            return entry

    def put(self, user_id: str, *, intent: Intent, parameters: Parameters, task: Task, question: str) -> None:
        """Store the turn for `user_id`; expired entries of every user are evicted first."""

        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now - entry.stored_at > self._ttl_s]
            for key in expired:
                del self._entries[key]
            self._entries[user_id] = QuickContext(
                intent=intent,
                parameters=parameters,
                task=task,
                question=question,
                stored_at=now,
            )

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
