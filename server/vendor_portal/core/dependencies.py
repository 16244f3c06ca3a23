"""FastAPI dependencies for database sessions, authentication and the refund client."""

from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from ..services.refund_client import HttpRefundClient, RefundService
from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError, AuthorizationError

VENDOR_ROLE = "vendor"
PAYMENTS_ROLE = "payments"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller taken from the bearer token."""

    user_id: str
    role: str

    @property
    def is_vendor(self) -> bool:
        return self.role == VENDOR_ROLE


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Actor:
    """
    Authentication dependency that validates Bearer tokens.

    The token must be an HS256 JWT signed with ``bearer_token_secret`` carrying
    ``sub`` (user id) and optionally ``role``; expiry is enforced by PyJWT.

    Raises:
        AuthenticationError: If the header or token is missing or invalid
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    parts = authorization.split()
    if len(parts) != 2:
        raise AuthenticationError("Invalid authorization header format")

    scheme, token = parts
    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    return Actor(user_id=str(user_id), role=str(payload.get("role", "user")))


async def require_vendor(actor: Actor = Depends(get_current_user)) -> Actor:
    """Authorization dependency for vendor-only routes."""
    if not actor.is_vendor:
        raise AuthorizationError(
            "This operation is only available to vendors",
            required_role=VENDOR_ROLE,
        )
    return actor


async def require_payments(actor: Actor = Depends(get_current_user)) -> Actor:
    """Authorization dependency for payments platform callbacks."""
    if actor.role != PAYMENTS_ROLE:
        raise AuthorizationError(
            "This operation is only available to the payments platform",
            required_role=PAYMENTS_ROLE,
        )
    return actor


def get_refund_service(request: Request) -> RefundService:
    """
    Refund client dependency.

    The client lives on ``app.state`` for the application's lifetime and is
    created on first use when the lifespan did not set one up.
    """
    client = getattr(request.app.state, "refund_service", None)
    if client is None:
        client = HttpRefundClient(
            base_url=settings.refund_service_url,
            timeout=settings.refund_service_timeout_seconds,
        )
        request.app.state.refund_service = client
    return client


RequiredAuth = Depends(get_current_user)
VendorAuth = Depends(require_vendor)
PaymentsAuth = Depends(require_payments)
DatabaseSession = Depends(get_db)
RefundClient = Depends(get_refund_service)
