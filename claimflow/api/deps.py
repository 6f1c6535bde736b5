from typing import Callable, Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from claimflow.core.config import Settings, get_settings
from claimflow.core.security import CurrentUser, decode_session_token
from claimflow.db.session import SessionLocal
from claimflow.services.mailer import Mailer, SmtpMailer
from claimflow.services.notifications import NotificationDispatcher

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_settings_dep() -> Settings:
    return get_settings()


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings_dep),
) -> CurrentUser:
    """Get the caller from a Bearer session token or the session cookie."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = token or request.cookies.get(settings.session_cookie_name)
    if not token:
        raise credentials_exception

    user = decode_session_token(token, settings)
    if user is None:
        raise credentials_exception
    return user


def require_role(*roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory that only lets the given roles through."""
    allowed = {r.lower() for r in roles}

    def checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden",
            )
        return current_user

    return checker


def get_mailer(settings: Settings = Depends(get_settings_dep)) -> Mailer:
    return SmtpMailer(settings)


def get_dispatcher(
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings_dep),
) -> NotificationDispatcher:
    return NotificationDispatcher(mailer, settings)
