"""Password hashing, token issuance and the bearer authentication dependency."""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import Request, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from .core import get_settings
from .errors import ApiError
from .schemas import Identity

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# RFC 4648 base32 alphabet; 12 symbols give 60 bits of entropy.
PASSWORD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
PASSWORD_LENGTH = 12


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def generate_password() -> str:
    """Return a random password suitable for mailing to a user."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(PASSWORD_LENGTH))


def _encode(identity: Identity, secret: str, expires_delta: timedelta, scope: str) -> str:
    settings = get_settings()
    to_encode = identity.dump()
    to_encode.update(
        {"exp": datetime.now(timezone.utc) + expires_delta, "scope": scope}
    )
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)


def _decode(token: str, secret: str, scope: str) -> Identity | None:
    settings = get_settings()
    payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    if payload.get("scope") != scope:
        return None
    try:
        return Identity.model_validate(payload)
    except ValidationError:
        return None


def create_access_token(identity: Identity) -> str:
    """Create a signed JWT access token."""
    settings = get_settings()
    return _encode(
        identity,
        settings.SECRET_KEY,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "access",
    )


def create_refresh_token(identity: Identity) -> str:
    """Create a JWT refresh token with a longer lifetime and its own key."""
    settings = get_settings()
    return _encode(
        identity,
        settings.REFRESH_SECRET_KEY,
        timedelta(minutes=settings.REFRESH_TOKEN_EXPIRE_MINUTES),
        "refresh",
    )


def verify_access_token(token: str) -> Identity | None:
    """
    Decode an access token.

    Returns:
        Identity | None: Token claims, or ``None`` if the token is signed
        correctly but is not an access token or lacks identity claims.

    Raises:
        JWTError: If the signature, format or expiry check fails.
    """
    return _decode(token, get_settings().SECRET_KEY, "access")


def verify_refresh_token(token: str) -> Identity | None:
    """Decode a refresh token; same contract as :func:`verify_access_token`."""
    return _decode(token, get_settings().REFRESH_SECRET_KEY, "refresh")


def bearer_token(request: Request) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _unauthorized(reason: str) -> ApiError:
    return ApiError(
        status.HTTP_401_UNAUTHORIZED,
        [reason],
        "Authentication Failed",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_identity(request: Request) -> Identity:
    """
    Dependency that authenticates the request from its bearer token.

    Verification is stateless: the token's claims become the caller's
    identity without a database lookup. The identity is also stored on
    ``request.state.user``.

    Raises:
        ApiError: 401 when the token is missing, invalid or unverifiable.
    """
    token = bearer_token(request)
    if token is None:
        raise _unauthorized("Token not found")
    try:
        identity = verify_access_token(token)
    except JWTError as exc:
        logger.debug("Access token rejected: %s", exc)
        raise _unauthorized("Token verification failed")
    if identity is None:
        raise _unauthorized("Invalid token")
    request.state.user = identity
    return identity
