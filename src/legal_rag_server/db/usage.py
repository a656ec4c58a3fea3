"""
Usage Tracker

Daily per-feature usage counters and plan quota enforcement.
Counts live in PostgreSQL and are incremented with an atomic upsert.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert as pg_insert

from .models import UsageTracking
from ..auth.models import UserContext, UNLIMITED
from ..core.errors import QuotaExceeded


CHAT_MESSAGE_FEATURE = "chat_message"
CASE_SUMMARIZER_FEATURE = "case_summarizer"
AI_DRAFTING_FEATURE = "ai_drafting"


class UsageStatus(NamedTuple):
    """Status of a user's usage of one feature for the current day."""
    used: int
    remaining: Optional[int]
    limit: int
    is_limited: bool
    reset_time: datetime


class UsageTracker:
    """
    Feature usage counter keyed by (user, feature, day).
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def today_count(self, user_id: uuid.UUID, feature: str) -> int:
        """
        Return how many times ``feature`` was used by ``user_id`` today.
        """
        result = await self._session.execute(
            select(UsageTracking.count).where(
                UsageTracking.user_id == user_id,
                UsageTracking.feature == feature,
                UsageTracking.date == date.today(),
            )
        )
        return result.scalar_one_or_none() or 0

    async def status(self, user: UserContext, feature: str = CHAT_MESSAGE_FEATURE) -> UsageStatus:
        """
        Return today's usage against the user's plan limit.

        Users without a plan, admins, and plans with a limit of ``-1`` are
        reported as unlimited.
        """
        used = await self.today_count(user.user_id, feature)
        limit = UNLIMITED
        if user.plan is not None and not user.is_admin:
            limit = user.plan.max_chats_per_day

        unlimited = limit == UNLIMITED
        tomorrow = datetime.combine(
            date.today() + timedelta(days=1),
            datetime.min.time(),
            tzinfo=timezone.utc,
        )

        return UsageStatus(
            used=used,
            remaining=None if unlimited else max(0, limit - used),
            limit=limit,
            is_limited=not unlimited and used >= limit,
            reset_time=tomorrow,
        )

    async def check_quota(self, user: UserContext, feature: str = CHAT_MESSAGE_FEATURE) -> UsageStatus:
        """
        Enforce the daily chat quota.

        Raises
        ------
        QuotaExceeded
            If today's count has reached the plan's ``max_chats_per_day``.
        """
        usage = await self.status(user, feature)
        if usage.is_limited:
            raise QuotaExceeded(
                current_usage=usage.used,
                max_limit=usage.limit,
                plan_tier=user.plan.tier if user.plan else None,
            )
        return usage

    async def record(self, user_id: uuid.UUID, feature: str, count: int = 1) -> None:
        """
        Increment today's counter for a feature.

        Uses PostgreSQL upsert so concurrent requests never lose an increment.
        """
        stmt = pg_insert(UsageTracking).values(
            user_id=user_id,
            feature=feature,
            date=date.today(),
            count=count,
        ).on_conflict_do_update(
            constraint="uq_usage_user_feature_date",
            set_={"count": UsageTracking.count + count},
        )

        await self._session.execute(stmt)
        await self._session.flush()

    async def history(
        self,
        user_id: uuid.UUID,
        feature: str = CHAT_MESSAGE_FEATURE,
        days: int = 7,
    ) -> list[dict]:
        """
        Get recent daily usage for a user and feature, newest first.
        """
        start_date = date.today() - timedelta(days=days)

        result = await self._session.execute(
            select(UsageTracking)
            .where(
                UsageTracking.user_id == user_id,
                UsageTracking.feature == feature,
                UsageTracking.date >= start_date,
            )
            .order_by(UsageTracking.date.desc())
        )

        return [
            {"date": usage.date.isoformat(), "count": usage.count}
            for usage in result.scalars().all()
        ]
