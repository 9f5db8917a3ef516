"""
In-memory import session store.

One record per CSV import, keyed by id. Status moves
pending -> running -> succeeded | failed. Nothing is persisted: a restart
loses every session, which is acceptable for a single server process.
"""
import threading
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

STATUSES = ("pending", "running", "succeeded", "failed")

_TRANSITIONS = {
    "pending": {"running", "failed"},
    "running": {"succeeded", "failed"},
    "succeeded": set(),
    "failed": set(),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ImportSession:
    id: str
    entity: str
    user_id: Optional[int] = None
    filename: Optional[str] = None
    encoding: Optional[str] = None
    status: str = "pending"
    created_at: str = field(default_factory=_now)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class ImportSessionStore:
    def __init__(self, max_sessions: int = 500):
        self._sessions: dict[str, ImportSession] = {}
        self._lock = threading.Lock()
        self._max = max_sessions

    def create(self, entity: str, user_id: Optional[int] = None, filename: Optional[str] = None) -> ImportSession:
        session = ImportSession(id=str(uuid.uuid4()), entity=entity, user_id=user_id, filename=filename)
        with self._lock:
            self._sessions[session.id] = session
            self._evict()
        return session

    def get(self, session_id: str) -> Optional[ImportSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_for_user(self, user_id: Optional[int] = None, limit: int = 20) -> list[ImportSession]:
        with self._lock:
            items = [s for s in self._sessions.values() if user_id is None or s.user_id == user_id]
        items.sort(key=lambda s: s.created_at, reverse=True)
        return items[:limit]

    def transition(self, session_id: str, status: str, **fields) -> ImportSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(session_id)
            if status != session.status and status not in _TRANSITIONS[session.status]:
                raise ValueError(f"Invalid import session transition {session.status} -> {status}")

            session.status = status
            if status == "running" and session.started_at is None:
                session.started_at = _now()
            if status in ("succeeded", "failed"):
                session.completed_at = _now()
            for k, v in fields.items():
                if hasattr(session, k):
                    setattr(session, k, v)
            return session

    def clear(self):
        with self._lock:
            self._sessions.clear()

    def _evict(self):
        # 古い完了済みセッションから捨てる
        if len(self._sessions) <= self._max:
            return
        finished = sorted(
            (s for s in self._sessions.values() if s.status in ("succeeded", "failed")),
            key=lambda s: s.created_at,
        )
        for s in finished[: len(self._sessions) - self._max]:
            del self._sessions[s.id]


import_sessions = ImportSessionStore()
