"""Credential and key helpers shared by the HTTP and realtime surfaces."""
from __future__ import annotations

import base64
import binascii
from datetime import timedelta

from jose import ExpiredSignatureError, JWTError, jwt
from nacl.exceptions import CryptoError
from nacl.public import PublicKey

from quire.core.settings import settings
from quire.db.time import utcnow


class CredentialsError(Exception):
    """Raised when a bearer credential cannot be turned into a user identity.

    ``reason`` is one of ``missing``, ``invalid``, ``expired`` or
    ``misconfigured``.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def create_access_token(user_id: int, expires_minutes: int | None = None) -> str:
    """Issue a signed access token for ``user_id``.

    Args:
        user_id: Identifier of the authenticated user.
        expires_minutes: Optional lifetime override.

    Returns:
        Encoded JWT string.

    Raises:
        CredentialsError: If no signing secret is configured.
    """
    if not settings.secret_key:
        raise CredentialsError("misconfigured")
    now = utcnow()
    lifetime = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=lifetime)).timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str | None) -> int:
    """Verify ``token`` and return the user identifier it carries.

    Raises:
        CredentialsError: On a missing, invalid or expired token, or when the
            server has no secret to verify with.
    """
    if not token:
        raise CredentialsError("missing")
    if not settings.secret_key:
        raise CredentialsError("misconfigured")
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as err:
        raise CredentialsError("expired") from err
    except JWTError as err:
        raise CredentialsError("invalid") from err

    subject = payload.get("sub")
    if subject is None:
        raise CredentialsError("invalid")
    try:
        return int(subject)
    except (TypeError, ValueError) as err:
        raise CredentialsError("invalid") from err


def validate_public_key(public_key_b64: str) -> str:
    """Validate a base64-encoded Curve25519 box public key.

    Returns:
        The stripped key string, ready for storage.

    Raises:
        ValueError: If the key is not valid base64 or not a 32-byte key.
    """
    cleaned = public_key_b64.strip()
    try:
        raw = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError("Public key must be valid base64") from err
    if len(raw) != PublicKey.SIZE:
        raise ValueError(f"Public key must be {PublicKey.SIZE} bytes")
    try:
        PublicKey(raw)
    except CryptoError as err:  # pragma: no cover - length already checked
        raise ValueError("Invalid public key format") from err
    return cleaned
