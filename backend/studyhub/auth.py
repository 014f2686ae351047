"""Authentication helpers and FastAPI security dependencies.

This module provides utilities to decode JWT tokens and the FastAPI
dependencies `get_current_user` (bearer token required) and
`get_optional_user` (anonymous callers allowed) that return the
corresponding `User` model instance from the database.

Token verification raises HTTPExceptions on failure so the helpers can
be used directly inside route dependencies.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session
from .config import settings
from .database import get_session
from . import models, repositories

bearer_scheme = HTTPBearer()
optional_bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("studyhub.auth")


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def _user_from_token(token: str, session: Session) -> models.User:
    payload = decode_token(token)
    user_id = payload.get('user_id')
    if not user_id:
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(session).get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    Raises an HTTPException(401) for any authentication issue.
    """
    return _user_from_token(credentials.credentials, session)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(optional_bearer_scheme),
    session: Session = Depends(get_session),
) -> Optional[models.User]:
    """Like `get_current_user` but returns `None` when no valid token is sent."""
    if credentials is None:
        return None
    try:
        return _user_from_token(credentials.credentials, session)
    except HTTPException as exc:
        logger.debug("ignoring bearer token on optional route: %s", exc.detail)
        return None
