"""
Usage Routes

Today's chat usage for the calling user against their plan limit, and
recent daily counts per feature.
"""

from fastapi import APIRouter, Depends, Query
from typing import Annotated, List

from .models import UsageTodayResponse, UsageDay
from .dependencies import get_usage_tracker
from ..auth.models import UserContext
from ..auth.security import verify_access_token
from ..db.usage import UsageTracker, CHAT_MESSAGE_FEATURE

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/today", response_model=UsageTodayResponse)
async def usage_today(
    user: Annotated[UserContext, Depends(verify_access_token)],
    usage: Annotated[UsageTracker, Depends(get_usage_tracker)],
) -> UsageTodayResponse:
    current = await usage.status(user)
    return UsageTodayResponse(
        used=current.used,
        remaining=current.remaining,
        limit=current.limit,
        is_limited=current.is_limited,
        reset_time=current.reset_time,
        plan_tier=user.plan.tier if user.plan else None,
    )


@router.get("/history", response_model=List[UsageDay])
async def usage_history(
    user: Annotated[UserContext, Depends(verify_access_token)],
    usage: Annotated[UsageTracker, Depends(get_usage_tracker)],
    feature: str = Query(CHAT_MESSAGE_FEATURE),
    days: int = Query(7, ge=1, le=90),
) -> List[UsageDay]:
    """Daily counts for one feature, newest first."""
    return [UsageDay(**row) for row in await usage.history(user.user_id, feature, days)]
