import asyncio
from datetime import timedelta
from typing import Dict, List, Optional

from loguru import logger

from clinical_mcp.errors import SessionLimitExceeded
from clinical_mcp.schemas import ClinicalSession, utcnow


class SessionStore:
    """In-memory map of session id to session, owned by one manager.

    Nothing is persisted; open sessions are lost on restart. Each session gets
    its own ``asyncio.Lock`` so that only one operation mutates it at a time,
    while different sessions proceed independently.
    """

    def __init__(self, max_sessions: int = 1000):
        self.max_sessions = max_sessions
        self._sessions: Dict[str, ClinicalSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[ClinicalSession]:
        return self._sessions.get(session_id)

    def all(self) -> List[ClinicalSession]:
        return list(self._sessions.values())

    def active(self) -> List[ClinicalSession]:
        return [s for s in self._sessions.values() if s.is_active]

    def lock(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def add(self, session: ClinicalSession) -> None:
        if len(self._sessions) >= self.max_sessions:
            self._evict_closed(len(self._sessions) - self.max_sessions + 1)
        if len(self._sessions) >= self.max_sessions:
            raise SessionLimitExceeded(
                f"Session limit reached ({self.max_sessions} open sessions); close a session first"
            )
        self._sessions[session.id] = session
        logger.info(f"Stored session {session.id} (total sessions: {len(self._sessions)})")

    def remove(self, session_id: str) -> bool:
        self._locks.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def sweep_idle(self, max_idle_seconds: float) -> int:
        """Drop sessions with no activity for longer than ``max_idle_seconds``."""
        cutoff = utcnow() - timedelta(seconds=max_idle_seconds)
        stale = [
            sid for sid, s in self._sessions.items()
            if s.last_activity < cutoff and not self.lock(sid).locked()
        ]
        for sid in stale:
            self.remove(sid)
        if stale:
            logger.info(f"Swept {len(stale)} idle sessions")
        return len(stale)

    def _evict_closed(self, count: int) -> None:
        closed = sorted(
            (s for s in self._sessions.values() if not s.is_active),
            key=lambda s: s.last_activity,
        )
        for session in closed[:count]:
            self.remove(session.id)
            logger.info(f"Evicted closed session {session.id} to make room")
