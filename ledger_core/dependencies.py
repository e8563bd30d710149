"""
FastAPI dependencies for authentication and collaborators.

Authentication:
  Tokens are issued by an external provider and arrive as
  "Authorization: Bearer <jwt>". authenticate() verifies the token and
  returns the active User named by its "sub" claim.

  POST /transactions cannot use get_current_user as a plain dependency: one
  of its request shapes (the inbound external transfer) is unauthenticated,
  and which shape arrived is only known after the body is classified. That
  route reads the credentials with bearer_scheme and calls authenticate()
  itself when needed. The account read endpoints always require a user and
  use get_current_user.

Collaborators:
  get_payment_gateway() returns the gateway built by the application
  lifespan, so tests can swap it on app.state.
"""

import uuid

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.database import get_db
from ledger_core.exceptions import AuthenticationError
from ledger_core.models.user import User
from ledger_core.security import decode_access_token
from ledger_core.services.gateway import PaymentGateway

# auto_error=False: a missing header yields None instead of FastAPI's own 403,
# so the decision (and the 401) stays with authenticate().
bearer_scheme = HTTPBearer(auto_error=False)


async def authenticate(
    db: AsyncSession,
    credentials: HTTPAuthorizationCredentials | None,
) -> User:
    """
    Resolve bearer credentials to an active User.

    Raises:
        AuthenticationError: If the token is missing, invalid, expired, or
            names a user that does not exist or is inactive.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise AuthenticationError()
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise AuthenticationError()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise AuthenticationError()

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency form of authenticate() for always-authenticated routes."""
    return await authenticate(db, credentials)


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway
