# app/dependencies.py

import logging
from typing import Iterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"

strict_bearer_scheme = HTTPBearer(auto_error=True)


class CurrentUser(BaseModel):
    user_id: str
    role: str = "USER"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


# --- DB session ---

def get_db_session_instance() -> Session:
    return SessionLocal()

def get_db() -> Iterator[Session]:
    """
    Main FastAPI dependency for a DB session.
    """
    db = get_db_session_instance()
    try:
        yield db
    finally:
        db.close()

# --- Authentication ---

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(strict_bearer_scheme),
) -> CurrentUser:
    """
    Requires a valid bearer token issued by the auth service.
    The user id comes from the `sub` claim, the role from `role`.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT Error during token decoding: {e}")
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        logger.warning("Token payload is missing 'sub' (user_id).")
        raise credentials_exception

    return CurrentUser(user_id=str(user_id), role=payload.get("role") or "USER")


def get_admin_user(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """
    Guards admin endpoints.
    """
    if not current_user.is_admin:
        logger.warning(f"Permission denied for user {current_user.user_id} with role {current_user.role}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this resource."
        )
    return current_user


def ensure_self_or_admin(target_user_id: str, current_user: CurrentUser) -> None:
    if target_user_id != current_user.user_id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot view another user's points."
        )
