from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jwt import PyJWTError
from sqlalchemy.orm import Session

from backend.db.session import get_session
from backend.models.entities import User
from backend.security.jwt import decode_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

_BEARER = {"WWW-Authenticate": "Bearer"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=_BEARER)


def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    if not token:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_token(token)
    except PyJWTError as exc:
        raise _unauthorized("Invalid authentication token") from exc
    if payload.get("token_type") != "access":
        raise _unauthorized("Access tokens only")
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise _unauthorized("Token missing subject") from exc
    user = session.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")
    return user
