"""Authentication service: password hashing, credential checks, session tokens."""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal

import bcrypt
from jose import JWTError, jwt

from backend.schemas.app import User

if TYPE_CHECKING:
    from backend.config import Settings
    from backend.schemas.app import AppDocument

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ADMIN_COOKIE = "admin-token"
USER_COOKIE = "auth-token"
MAX_PASSWORD_BYTES = 72

SessionType = Literal["admin", "user"]

_DUMMY_PASSWORD_HASH = bcrypt.hashpw(b"admini-dummy-password", bcrypt.gensalt()).decode("utf-8")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        msg = f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
        raise ValueError(msg)
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash. Malformed hashes never match."""
    encoded = plain_password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def check_admin_credentials(username: str, password: str, settings: Settings) -> bool:
    """Compare against the configured admin credentials in constant time."""
    user_ok = secrets.compare_digest(username.encode(), settings.admin_username.encode())
    password_ok = secrets.compare_digest(password.encode(), settings.admin_password.encode())
    return user_ok and password_ok


def authenticate_user(document: AppDocument, username: str, password: str) -> User | None:
    """Authenticate an end user by username and password."""
    user = next((u for u in document.users if u.username == username), None)
    if user is None:
        # Run a dummy hash check to reduce username timing side channels.
        verify_password(password, _DUMMY_PASSWORD_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def new_user(username: str, email: str, password: str, scopes: list[str] | None = None) -> User:
    """Build a user record with a hashed password."""
    return User(
        id=str(uuid.uuid4()),
        username=username,
        email=email,
        password_hash=hash_password(password),
        scopes=list(scopes or []),
        created_at=datetime.now(UTC).isoformat(),
    )


def create_session_token(
    subject: str,
    session_type: SessionType,
    secret_key: str,
    max_age_seconds: int,
    extra: dict[str, Any] | None = None,
) -> str:
    """Create a signed session token for a cookie."""
    to_encode: dict[str, Any] = dict(extra or {})
    expire = datetime.now(UTC) + timedelta(seconds=max_age_seconds)
    to_encode.update({"sub": subject, "exp": expire, "type": session_type})
    return str(jwt.encode(to_encode, secret_key, algorithm=ALGORITHM))


def decode_session_token(
    token: str, secret_key: str, session_type: SessionType
) -> dict[str, Any] | None:
    """Decode and validate a session token of the given type."""
    try:
        payload: dict[str, Any] = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        logger.debug("Failed to decode %s session token", session_type, exc_info=True)
        return None
    if payload.get("type") != session_type or not payload.get("sub"):
        return None
    return payload


def ensure_default_user(document: AppDocument, settings: Settings) -> AppDocument | None:
    """Seed the configured default user when the document has no users.

    Returns the updated document, or None when nothing changed.
    """
    if document.users:
        return None
    user = new_user(
        settings.default_user_username,
        settings.default_user_email,
        settings.default_user_password,
    )
    logger.info("Seeding default user '%s'", user.username)
    return document.model_copy(update={"users": [user]})
