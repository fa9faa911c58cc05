import logging
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from icc_checker.core import security
from icc_checker.models.user import AdminSession, User

logger = logging.getLogger(__name__)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, *, email: str, password: str, is_admin: bool = False) -> User:
    existing = await get_user_by_email(session, email)
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    db_user = User(
        email=email.strip().lower(),
        hashed_password=security.hash_password(password),
        is_admin=is_admin,
    )
    session.add(db_user)
    await session.commit()
    await session.refresh(db_user)
    return db_user


async def authenticate_user(session: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(session, email)
    if not user or not security.verify_password(password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return user


async def _open_admin_session(session: AsyncSession, user: User) -> AdminSession:
    admin_session = AdminSession(
        user_id=user.id,
        jti=security.new_token_id(),
        expires_at=security.access_token_expiry(),
    )
    session.add(admin_session)
    await session.commit()
    return admin_session


async def sign_in(session: AsyncSession, email: str, password: str) -> tuple[User, str]:
    """Check credentials and open a server-side session; returns the bearer token.

    A valid account without the admin role is signed out again straight away and
    refused, so no usable token ever leaves for a non-admin.
    """
    user = await authenticate_user(session, email, password)
    admin_session = await _open_admin_session(session, user)
    if not user.is_admin:
        await sign_out(session, admin_session.jti, reason="not admin")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied (not admin)")
    token = security.create_access_token(str(user.id), admin_session.jti, admin_session.expires_at)
    logger.info("sign-in", extra={"user_id": str(user.id)})
    return user, token


async def sign_out(session: AsyncSession, jti: str, reason: str = "logout") -> None:
    result = await session.execute(select(AdminSession).where(AdminSession.jti == jti))
    stored = result.scalar_one_or_none()
    if stored is None or stored.revoked:
        return
    stored.revoked = True
    stored.revoked_reason = reason
    await session.commit()
    logger.info("sign-out", extra={"user_id": str(stored.user_id), "reason": reason})


async def resolve_principal(session: AsyncSession, token: str | None) -> tuple[User, str] | None:
    if not token:
        return None
    payload = security.decode_token(token)
    if not payload or payload.get("type") != "access" or not payload.get("jti"):
        return None
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        return None

    result = await session.execute(select(AdminSession).where(AdminSession.jti == payload["jti"]))
    stored = result.scalar_one_or_none()
    if stored is None or stored.revoked or stored.user_id != user_id:
        return None
    if _as_aware(stored.expires_at) <= datetime.now(timezone.utc):
        return None
    user = await session.get(User, user_id)
    if user is None:
        return None
    return user, stored.jti


async def resolve_admin(session: AsyncSession, token: str | None) -> User | None:
    """Admin behind the token, or None; a failed role lookup counts as not admin."""
    try:
        principal = await resolve_principal(session, token)
    except SQLAlchemyError as exc:
        logger.warning("role lookup failed: %s", exc)
        return None
    if principal is None or not principal[0].is_admin:
        return None
    return principal[0]


async def current_principal_is_admin(session: AsyncSession, token: str | None) -> bool:
    return await resolve_admin(session, token) is not None
