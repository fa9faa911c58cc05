from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from icc_checker.core.logging_config import audit_session_ctx_var
from icc_checker.services.audit_session import AuditSession
from icc_checker.services.exceptions import AuditSessionNotFound, SessionBusy

logger = logging.getLogger(__name__)


class AuditSessionRegistry:
    """Process-local store of in-progress audit sessions.

    Each session has a single writer at a time: an operation arriving while another
    one on the same session is still awaiting the database is refused, not queued.
    """

    def __init__(self, ttl: timedelta) -> None:
        self.ttl = ttl
        self._sessions: dict[uuid.UUID, AuditSession] = {}
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> AuditSession:
        self.purge_expired()
        session = AuditSession()
        self._sessions[session.id] = session
        self._locks[session.id] = asyncio.Lock()
        logger.info("audit session opened", extra={"session_id": str(session.id)})
        return session

    def get(self, session_id: uuid.UUID) -> AuditSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise AuditSessionNotFound("Audit session not found", extra={"session_id": str(session_id)})
        return session

    def discard(self, session_id: uuid.UUID) -> None:
        self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)

    @asynccontextmanager
    async def hold(self, session_id: uuid.UUID) -> AsyncIterator[AuditSession]:
        session = self.get(session_id)
        lock = self._locks[session_id]
        if lock.locked():
            raise SessionBusy("Another operation is still running for this audit session")
        async with lock:
            token = audit_session_ctx_var.set(str(session_id))
            try:
                yield session
            finally:
                session.touched_at = datetime.now(timezone.utc)
                audit_session_ctx_var.reset(token)

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.touched_at > self.ttl and not self._locks[session_id].locked()
        ]
        for session_id in expired:
            self.discard(session_id)
        if expired:
            logger.info("expired audit sessions purged", extra={"count": len(expired)})
        return len(expired)
