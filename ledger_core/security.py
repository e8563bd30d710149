"""
Bearer token utilities (JWT).

The ledger does not log anyone in. An external authentication provider
issues HS256-signed JWTs whose "sub" claim is the user's id; this module
verifies them with the shared SECRET_KEY. create_access_token exists for the
demo seed script and the test suite, which stand in for that provider.

Tokens carry:
  - "sub": the principal (User.id as a string)
  - "exp": expiry timestamp; expired tokens fail verification
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from ledger_core.config import settings


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """
    Sign a token for ``subject``.

    Args:
        subject: The principal id to place in the "sub" claim.
        expires_delta: Optional lifetime. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES from settings.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify a token's signature and expiry and return its claims.

    Raises:
        JWTError: If the token is expired, tampered with, or malformed.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
