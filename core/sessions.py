# core/sessions.py
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .logger import get_logger

logger = get_logger(__name__)


class SessionExpiredError(Exception):
    """The edit session is unknown or its lifetime has passed."""


@dataclass
class EditSession:
    id: str
    item_id: str
    actor_id: str
    expires_at: float
    changes: Dict[str, Any] = field(default_factory=dict)


class EditSessionStore:
    """
    In-memory pending edits keyed by an opaque session id.

    Sessions live for `ttl_seconds` from their last touch. When more than
    `max_sessions` are open the oldest one is evicted.
    """

    def __init__(
        self,
        ttl_seconds: int = 900,
        max_sessions: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: "OrderedDict[str, EditSession]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def open(self, item_id: str, actor_id: str) -> EditSession:
        session = EditSession(
            id=uuid.uuid4().hex,
            item_id=item_id,
            actor_id=actor_id,
            expires_at=self._clock() + self.ttl_seconds,
        )
        with self._lock:
            self._purge_locked()
            self._sessions[session.id] = session
            while len(self._sessions) > self.max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("Evicted edit session %s (store full)", evicted_id)
        logger.debug("Opened edit session %s for item %s", session.id, item_id)
        return session

    def get(self, session_id: str) -> EditSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionExpiredError(f"Edit session {session_id} not found")
            if session.expires_at <= self._clock():
                del self._sessions[session_id]
                raise SessionExpiredError(f"Edit session {session_id} has expired")
            return session

    def update(self, session_id: str, name: str, value: Any) -> EditSession:
        session = self.get(session_id)
        with self._lock:
            session.changes[name] = value
            session.expires_at = self._clock() + self.ttl_seconds
            self._sessions.move_to_end(session_id)
        return session

    def close(self, session_id: str) -> Optional[EditSession]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if s.expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("Purged %d expired edit session(s)", len(expired))
        return len(expired)
