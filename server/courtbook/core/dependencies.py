"""FastAPI dependencies for authentication, the payment gateway, and idempotency keys."""

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError, ValidationError


@dataclass(frozen=True)
class CurrentUser:
    """Identity supplied by the session provider."""

    user_id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> CurrentUser:
    """
    Authentication dependency that validates Bearer session tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        CurrentUser: Identity from the validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        # PyJWT checks "exp" itself when present
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}")

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise AuthenticationError("Invalid token payload")

    return CurrentUser(
        user_id=str(user_id),
        email=email,
        name=payload.get("name"),
        phone=payload.get("phone"),
    )


def get_payment_gateway(request: Request):
    """Return the gateway client opened at application start-up."""
    return request.app.state.payment_gateway


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> str:
    """
    Require and validate the Idempotency-Key header.

    Raises:
        ValidationError: If the header is missing or has an invalid length
    """
    if not idempotency_key:
        raise ValidationError(
            "Idempotency-Key header is required for this operation",
            errors={"Idempotency-Key": "missing"},
        )
    if len(idempotency_key) > 255:
        raise ValidationError(
            "Idempotency key must be between 1 and 255 characters",
            errors={"Idempotency-Key": "too long"},
        )
    return idempotency_key


RequiredAuth = Depends(get_current_user)
PaymentGatewayDep = Depends(get_payment_gateway)
IdempotencyKey = Depends(get_idempotency_key)
