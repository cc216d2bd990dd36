from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from resumeai.core.config import SECRET_KEY, ALGORITHM
from resumeai.db.session import SessionLocal
from resumeai.db.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


@dataclass(frozen=True)
class SessionContext:
    """Identity of the caller, passed explicitly into every service call."""
    user_id: int
    email: str


def get_session_factory():
    """Session factory for handlers that open their own short-lived sessions."""
    return SessionLocal


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _unauthorized(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_session_token(token: str, db: Session) -> SessionContext:
    """
    Resolve a bearer token into a SessionContext.

    Raises:
        HTTPException 401: Token invalid, expired, or user no longer exists
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise _unauthorized()

    subject: Optional[str] = payload.get("sub")
    if subject is None:
        raise _unauthorized()

    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise _unauthorized()

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unauthorized("Session expired, please sign in again")

    return SessionContext(user_id=user.id, email=user.email)


def get_current_session(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> SessionContext:
    """Get the caller's SessionContext from the JWT bearer token."""
    return decode_session_token(token, db)
