from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from claimflow.core.config import Settings, get_settings
from claimflow.core.identity import normalize_email

SESSION_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class CurrentUser:
    """The caller, as carried by their session token."""
    identity: str
    role: str = "user"


def create_session_token(
    identity: str,
    role: str = "user",
    settings: Optional[Settings] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a session JWT. Login itself happens elsewhere; used by tests and operators."""
    settings = settings or get_settings()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(hours=settings.session_token_expire_hours)

    to_encode = {
        "sub": normalize_email(identity),
        "role": role,
        "exp": expire,
        "type": SESSION_TOKEN_TYPE,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_session_token(token: str, settings: Optional[Settings] = None) -> Optional[CurrentUser]:
    """Decode and validate a session JWT. Returns None if invalid or expired."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    identity = payload.get("sub") or payload.get("email")
    if not identity or payload.get("type", SESSION_TOKEN_TYPE) != SESSION_TOKEN_TYPE:
        return None
    return CurrentUser(identity=normalize_email(identity), role=str(payload.get("role") or "user").lower())
