from datetime import datetime, timedelta, timezone

import pytest

from icc_checker.core.logging_config import audit_session_ctx_var
from icc_checker.services.exceptions import AuditSessionNotFound, SessionBusy
from icc_checker.services.session_registry import AuditSessionRegistry


@pytest.mark.anyio
async def test_second_operation_on_a_busy_session_is_refused() -> None:
    registry = AuditSessionRegistry(ttl=timedelta(minutes=5))
    session = registry.create()

    async with registry.hold(session.id) as held:
        assert held is session
        assert audit_session_ctx_var.get() == str(session.id)
        with pytest.raises(SessionBusy):
            async with registry.hold(session.id):
                pass

    async with registry.hold(session.id):
        pass


@pytest.mark.anyio
async def test_unknown_and_discarded_sessions() -> None:
    registry = AuditSessionRegistry(ttl=timedelta(minutes=5))
    session = registry.create()
    registry.discard(session.id)

    with pytest.raises(AuditSessionNotFound):
        async with registry.hold(session.id):
            pass


def test_abandoned_sessions_are_purged() -> None:
    registry = AuditSessionRegistry(ttl=timedelta(minutes=5))
    stale = registry.create()
    fresh = registry.create()
    stale.touched_at = datetime.now(timezone.utc) - timedelta(minutes=10)

    assert registry.purge_expired() == 1
    assert len(registry) == 1
    assert registry.get(fresh.id) is fresh
    with pytest.raises(AuditSessionNotFound):
        registry.get(stale.id)
