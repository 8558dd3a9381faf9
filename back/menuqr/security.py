from datetime import datetime, timedelta, timezone
from typing import Annotated

import bcrypt
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlmodel import Session, select

from .db import get_session
from .errors import Unauthenticated
from .models import User
from .settings import settings

ACCESS_TOKEN_COOKIE = "access_token"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except (ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def token_for(user: User) -> str:
    return create_access_token(
        data={"sub": user.email, "uid": user.id},
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
    )


def get_token(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)]
) -> str | None:
    """
    Get token from cookie (primary) or Authorization header (fallback).
    """
    cookie_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if cookie_token:
        return cookie_token
    return token


def get_optional_user(
    token: Annotated[str | None, Depends(get_token)],
    session: Annotated[Session, Depends(get_session)],
) -> User | None:
    """Resolve the current identity, or None when the request carries no valid token."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    email = payload.get("sub")
    user_id = payload.get("uid")
    if email is None or user_id is None:
        return None

    return session.exec(
        select(User).where(User.id == user_id).where(User.email == email)
    ).first()


def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    if user is None:
        raise Unauthenticated("Could not validate credentials")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
