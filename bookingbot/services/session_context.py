"""
Per-actor interaction scratch state ("what is this staff member currently typing for").

In-memory with a TTL: an entry expires SESSION_TTL_SECONDS after its last write, and
losing every entry on restart only means the actor starts their step again.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from bookingbot.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    actor_id: int
    mode: str  # e.g. "add_slot", "reject_reason", "add_blacklist"
    data: dict = field(default_factory=dict)
    expires_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SessionStore:
    """Thread-safe mapping actor_id -> SessionContext with per-entry expiry."""

    def __init__(self, ttl_seconds: int | None = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self._entries: dict[int, SessionContext] = {}
        self._lock = threading.Lock()

    def get(self, actor_id: int) -> SessionContext | None:
        now = time.time()
        with self._lock:
            ctx = self._entries.get(actor_id)
            if ctx is None:
                return None
            if ctx.is_expired(now):
                del self._entries[actor_id]
                logger.debug(f"Session for actor {actor_id} expired (mode={ctx.mode})")
                return None
            return ctx

    def start(self, actor_id: int, mode: str, **data) -> SessionContext:
        """Begin a new step for actor, replacing whatever they were doing."""
        ctx = SessionContext(
            actor_id=actor_id,
            mode=mode,
            data=dict(data),
            expires_at=time.time() + self.ttl_seconds,
        )
        with self._lock:
            self._entries[actor_id] = ctx
        return ctx

    def update(self, actor_id: int, **data) -> SessionContext | None:
        """Merge data into the live session and push its expiry back. None if there is none."""
        now = time.time()
        with self._lock:
            ctx = self._entries.get(actor_id)
            if ctx is None or ctx.is_expired(now):
                self._entries.pop(actor_id, None)
                return None
            ctx.data.update(data)
            ctx.expires_at = now + self.ttl_seconds
            return ctx

    def clear(self, actor_id: int) -> bool:
        with self._lock:
            return self._entries.pop(actor_id, None) is not None

    def purge_expired(self) -> int:
        now = time.time()
        with self._lock:
            expired = [actor_id for actor_id, ctx in self._entries.items() if ctx.is_expired(now)]
            for actor_id in expired:
                del self._entries[actor_id]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    global _default_store
    if _default_store is None:
        _default_store = SessionStore()
    return _default_store
