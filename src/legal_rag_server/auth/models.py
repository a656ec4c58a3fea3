"""
Authentication Models

This module defines strongly-typed authentication and entitlement models
used throughout the server after JWT verification.
"""

import uuid
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


ADMIN_ROLES = frozenset({"admin", "super_admin"})

UNLIMITED = -1


class PlanEntitlements(BaseModel):
    """
    Subscription entitlements supplied by the billing service.

    The server only reads these flags; it never modifies plan state.
    A limit of ``-1`` means unlimited.
    """

    tier: str = Field(default="free", min_length=1)
    internet_search: bool = False
    max_chats_per_day: int = Field(default=UNLIMITED, ge=-1)
    max_documents: Optional[int] = Field(default=None, ge=-1)
    ai_model: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="ignore")


class UserContext(BaseModel):
    """
    Authenticated user context derived from a verified JWT.

    This object is injected into all protected routes and passed to every
    core operation; the core never authenticates on its own.
    """

    user_id: uuid.UUID = Field(
        ...,
        description="Identifier of the authenticated user.",
    )

    role: str = Field(
        default="user",
        min_length=1,
        description="Application role (user, admin, super_admin).",
    )

    plan: Optional[PlanEntitlements] = Field(
        default=None,
        description="Active subscription plan, if the user has one.",
    )

    model_config = ConfigDict(
        frozen=True,                # Makes UserContext immutable after creation
        arbitrary_types_allowed=False,
        extra="forbid",             # Prevents claim injection via unexpected fields
    )

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def can_search_web(self) -> bool:
        return bool(self.plan and self.plan.internet_search)
