import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lendingapi.config import settings
from lendingapi.exceptions import NotAuthenticatedError
from lendingapi.models import CurrentUser
from lendingapi.storage import Stores, get_stores

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

NO_TOKEN_MESSAGE = "Not authorized, no token"
TOKEN_FAILED_MESSAGE = "Not authorized, token failed"


def _password_bytes(password: str) -> bytes:
    # bcrypt only considers the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        logger.error("Stored password hash is not a valid bcrypt hash")
        return False


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expires_minutes)
    now = datetime.now(timezone.utc)
    payload = {"id": user_id, "iat": now, "exp": now + expires_delta}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
    """Return the user id carried by a valid token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp"]},
        )
    except jwt.PyJWTError as e:
        logger.error(f"Token verification failed: {e}")
        raise NotAuthenticatedError(TOKEN_FAILED_MESSAGE)

    user_id = payload.get("id")
    if not isinstance(user_id, str) or not user_id:
        logger.error("Token payload has no user id")
        raise NotAuthenticatedError(TOKEN_FAILED_MESSAGE)
    return user_id


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    stores: Stores = Depends(get_stores),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise NotAuthenticatedError(NO_TOKEN_MESSAGE)

    user_id = decode_access_token(credentials.credentials)
    user = await stores.users.get(user_id)
    if user is None:
        logger.error(f"Token refers to unknown user {user_id}")
        raise NotAuthenticatedError(TOKEN_FAILED_MESSAGE)
    return CurrentUser(id=user.id, username=user.username)
