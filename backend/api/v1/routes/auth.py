from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from jwt import PyJWTError
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from backend.api.v1.deps.auth import get_current_user
from backend.db.session import get_session
from backend.db.users import create_user, get_user_by_email, normalize_email
from backend.models.entities import User
from backend.observability import log_structured
from backend.security.jwt import create_access_token, create_refresh_token, decode_token
from backend.security.passwords import hash_password, verify_and_upgrade

router = APIRouter()


class RegisterPayload(BaseModel):
    email: str
    password: str = Field(..., min_length=8)
    first_name: Optional[str] = Field(None, max_length=128)
    last_name: Optional[str] = Field(None, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class UserOut(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginPayload(BaseModel):
    email: str
    password: str = Field(..., min_length=8)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in_sec: int


class RefreshPayload(BaseModel):
    refresh_token: str


def _issue_tokens(user_id: int) -> TokenResponse:
    access_token, access_ttl = create_access_token(user_id)
    refresh_token, _ = create_refresh_token(user_id)
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in_sec=access_ttl,
    )


def _user_out(user: User) -> UserOut:
    return UserOut(id=user.id, email=user.email, first_name=user.first_name, last_name=user.last_name)


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, session: Session = Depends(get_session)) -> UserOut:
    if get_user_by_email(session, payload.email):
        log_structured(logging.INFO, "auth.register", success=False, reason="email_taken")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    user = create_user(
        session,
        payload.email,
        hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    log_structured(logging.INFO, "auth.register", success=True, user_id=user.id)
    return _user_out(user)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginPayload, session: Session = Depends(get_session)) -> TokenResponse:
    user = get_user_by_email(session, payload.email)
    valid, replacement_hash = (False, None)
    if user:
        valid, replacement_hash = verify_and_upgrade(payload.password, user.password_hash)
    if not user or not valid:
        log_structured(logging.INFO, "auth.login", success=False)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if replacement_hash:
        user.password_hash = replacement_hash
        session.commit()
    log_structured(logging.INFO, "auth.login", success=True, user_id=user.id)
    return _issue_tokens(user.id)


@router.post("/refresh", response_model=TokenResponse)
def refresh(payload: RefreshPayload, session: Session = Depends(get_session)) -> TokenResponse:
    try:
        decoded = decode_token(payload.refresh_token)
    except PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token") from exc
    if decoded.get("token_type") != "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    try:
        user_id = int(decoded["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token") from exc
    if not session.get(User, user_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    return _issue_tokens(user_id)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return _user_out(user)
