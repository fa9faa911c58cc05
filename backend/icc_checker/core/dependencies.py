from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from icc_checker.core.config import settings
from icc_checker.db.session import get_session
from icc_checker.models.user import User
from icc_checker.services import auth as auth_service
from icc_checker.services.audit_session import Phase, admin_gate
from icc_checker.services.backend import SqlAuditBackend
from icc_checker.services.checklist import DynamicItemSource, ItemSource, StaticItemSource
from icc_checker.services.session_registry import AuditSessionRegistry

bearer_scheme = HTTPBearer(auto_error=False)


def get_backend(session: AsyncSession = Depends(get_session)) -> SqlAuditBackend:
    return SqlAuditBackend(session)


def get_item_source(session: AsyncSession = Depends(get_session)) -> ItemSource:
    if settings.checklist_source == "static":
        return StaticItemSource()
    return DynamicItemSource(session)


def get_history_limit() -> int:
    # The static deployment shows a longer store history on the start screen.
    if settings.checklist_source == "static":
        return settings.store_history_limit
    return settings.start_history_limit


def get_session_registry(request: Request) -> AuditSessionRegistry:
    return request.app.state.audit_sessions


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> tuple[User, str]:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    principal = await auth_service.resolve_principal(session, credentials.credentials)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")
    return principal


async def require_admin(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Re-check the caller on every admin request; any failure lands on the login screen."""
    token = credentials.credentials if credentials else None
    admin = await auth_service.resolve_admin(session, token)
    reached = admin_gate(Phase.admin_dashboard, authenticated=bool(token), is_admin=admin is not None)
    if reached == Phase.admin_login or admin is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin login required")
    return admin
