import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import JWTError, jwt

from icc_checker.core.config import settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def new_token_id() -> str:
    return secrets.token_urlsafe(24)


def access_token_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_exp_minutes)


def create_access_token(subject: str, jti: str, expires_at: datetime) -> str:
    to_encode = {"sub": subject, "type": "access", "jti": jti, "exp": expires_at}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
