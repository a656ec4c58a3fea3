"""
JWT Verification

This module is responsible for:

1. Verifying incoming JWTs issued by the authentication service.
2. Producing a validated `UserContext` (identity, role, plan) for
   downstream routes.
3. Enforcing role-based access where a route needs it.

Security Model
--------------
- Tokens are short-lived and include issuer, audience and subject claims.
- The optional ``plan`` claim carries the user's subscription entitlements.
"""

from __future__ import annotations

import uuid
from typing import Callable

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError

from ..config import settings
from .models import UserContext, PlanEntitlements


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=True)


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class JWTVerificationError(RuntimeError):
    """Raised internally when token verification fails before converting to HTTP errors."""


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _validate_jwt_config() -> None:
    """
    Validate that JWT verification configuration is present.
    """
    if not settings.jwt_secret.get_secret_value():
        raise JWTVerificationError("Missing jwt_secret in configuration.")
    if not settings.jwt_algo:
        raise JWTVerificationError("Missing jwt_algo in configuration.")


def _decode_token(token: str) -> dict:
    """
    Decode and validate a JWT issued by the authentication service.

    Raises
    ------
    Various JWT-related exceptions, which the public wrapper handles.
    """
    _validate_jwt_config()

    return jwt.decode(
        token,
        settings.jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algo],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options={
            "require": ["iss", "aud", "iat", "exp", "sub"],
        },
    )


# ---------------------------------------------------------------------
# Public dependency
# ---------------------------------------------------------------------

def verify_access_token(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> UserContext:
    """
    Verify the bearer token and return the authenticated user context.

    Expected claims:
      - sub: user UUID
      - role: application role (defaults to "user")
      - plan: optional entitlement mapping

    Raises
    ------
    HTTPException(401) for invalid or expired tokens.
    """
    token = creds.credentials

    try:
        payload = _decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
        )
    except jwt.InvalidAudienceError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token audience.",
        )
    except jwt.InvalidIssuerError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token issuer.",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or malformed token.",
        )
    except JWTVerificationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )

    # ---------------------------------------------------------------
    # Validate required fields
    # ---------------------------------------------------------------
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token 'sub' claim must be a user UUID.",
        )

    role = payload.get("role") or "user"
    raw_plan = payload.get("plan")

    if raw_plan is not None and not isinstance(raw_plan, dict):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="'plan' claim must be an object.",
        )

    try:
        plan = PlanEntitlements(**raw_plan) if raw_plan else None
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed 'plan' claim.",
        )

    return UserContext(user_id=user_id, role=role, plan=plan)


# ---------------------------------------------------------------------
# Role enforcement helper
# ---------------------------------------------------------------------

def require_roles(*roles: str) -> Callable:
    """
    Create a FastAPI dependency that only admits the given roles.

    Example:
        @router.post("/admin/reprocess")
        async def reprocess(user = Depends(require_roles("admin", "super_admin"))):
            ...
    """

    def check_role(
        user: UserContext = Depends(verify_access_token),
    ) -> UserContext:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}",
            )
        return user

    return check_role
