"""
Analytics service: interaction logging, view counters, trending threads.

Views are written in two places:
  interaction_logs   one row per view (anonymous viewers use the all-zero id)
  thread_analytics   view_count / unique_viewers, bumped with atomic
                     ``SET x = x + 1`` updates

A view is "unique" when the authenticated viewer has no earlier ``view`` row
for the thread. Anonymous views never count as unique.
"""
import logging
from datetime import datetime, time, timedelta

from sqlalchemy import func, select, update

from threadspire.errors import ValidationError
from threadspire.models import InteractionLog, InteractionType, Thread, ThreadAnalytics, utcnow
from threadspire.realtime import INSERT
from threadspire.schemas import (
    DailyViews,
    InteractionRecord,
    ThreadAnalyticsResponse,
    TrendingThread,
)
from threadspire.services.base import Service
from threadspire.services.hydrate import load_thread_responses
from threadspire.telemetry import THREAD_VIEWS_TOTAL

logger = logging.getLogger(__name__)

MAX_TRENDING = 50
MAX_DAYS = 365


class AnalyticsService(Service):

    async def log_interaction(self, thread_id: str, interaction_type: InteractionType) -> None:
        self.db.add(
            InteractionLog(
                thread_id=thread_id,
                user_id=self.viewer_id,
                interaction_type=InteractionType(interaction_type).value,
            )
        )
        self.stage(
            "interaction_logs",
            INSERT,
            thread_id=thread_id,
            user_id=self.viewer_id,
            interaction_type=InteractionType(interaction_type).value,
        )

    async def log_thread_view(self, thread_id: str) -> None:
        first_view = False
        if self.viewer is not None:
            prior = await self.db.scalar(
                select(InteractionLog.id)
                .where(
                    InteractionLog.thread_id == thread_id,
                    InteractionLog.user_id == self.viewer.id,
                    InteractionLog.interaction_type == InteractionType.VIEW.value,
                )
                .limit(1)
            )
            first_view = prior is None

        await self.log_interaction(thread_id, InteractionType.VIEW)

        values = {"view_count": ThreadAnalytics.view_count + 1, "updated_at": utcnow()}
        if first_view:
            values["unique_viewers"] = ThreadAnalytics.unique_viewers + 1
        result = await self.db.execute(
            update(ThreadAnalytics)
            .where(ThreadAnalytics.thread_id == thread_id)
            .values(**values)
        )
        if result.rowcount == 0:
            # threads created before analytics rows existed
            self.db.add(
                ThreadAnalytics(
                    thread_id=thread_id,
                    view_count=1,
                    unique_viewers=1 if first_view else 0,
                )
            )
        await self.db.flush()
        THREAD_VIEWS_TOTAL.labels(
            viewer="anonymous" if self.viewer is None else "authenticated"
        ).inc()

    async def get_thread_analytics(self, thread_id: str) -> ThreadAnalyticsResponse:
        await self.get_visible_thread(thread_id)
        row = await self.db.get(ThreadAnalytics, thread_id, populate_existing=True)
        if row is None:
            return ThreadAnalyticsResponse()
        return ThreadAnalyticsResponse(
            view_count=row.view_count, unique_viewers=row.unique_viewers
        )

    async def get_thread_interactions(self, thread_id: str) -> list[InteractionRecord]:
        await self.get_visible_thread(thread_id)
        rows = await self.db.execute(
            select(InteractionLog.interaction_type, InteractionLog.created_at)
            .where(InteractionLog.thread_id == thread_id)
            .order_by(InteractionLog.created_at)
        )
        return [
            InteractionRecord(interaction_type=itype, created_at=ts) for itype, ts in rows.all()
        ]

    async def get_trending_threads(self, limit: int = 5) -> list[TrendingThread]:
        """Published public threads with the most views over the trailing window."""
        if not 1 <= limit <= MAX_TRENDING:
            raise ValidationError(f"limit must be between 1 and {MAX_TRENDING}")
        since = utcnow() - timedelta(days=self.settings.trending_window_days)
        views = func.count(InteractionLog.id).label("views")
        rows = await self.db.execute(
            select(InteractionLog.thread_id, views)
            .join(Thread, Thread.id == InteractionLog.thread_id)
            .where(
                InteractionLog.interaction_type == InteractionType.VIEW.value,
                InteractionLog.created_at >= since,
                Thread.is_published.is_(True),
                Thread.is_private.is_(False),
            )
            .group_by(InteractionLog.thread_id)
            .order_by(views.desc(), InteractionLog.thread_id)
            .limit(limit)
        )
        ranked = rows.all()
        recent = {thread_id: n for thread_id, n in ranked}
        threads = await load_thread_responses(self.db, [thread_id for thread_id, _ in ranked])
        return [
            TrendingThread(**t.model_dump(), recent_views=recent[t.id]) for t in threads
        ]

    async def get_thread_views_by_day(self, thread_id: str, days: int = 30) -> list[DailyViews]:
        """Views per calendar day (UTC) for the last ``days`` days, oldest first."""
        if not 1 <= days <= MAX_DAYS:
            raise ValidationError(f"days must be between 1 and {MAX_DAYS}")
        await self.get_visible_thread(thread_id)

        today = utcnow().date()
        first_day = today - timedelta(days=days - 1)
        counts = {(first_day + timedelta(days=i)).isoformat(): 0 for i in range(days)}

        rows = await self.db.execute(
            select(InteractionLog.created_at).where(
                InteractionLog.thread_id == thread_id,
                InteractionLog.interaction_type == InteractionType.VIEW.value,
                InteractionLog.created_at >= datetime.combine(first_day, time.min),
            )
        )
        for (ts,) in rows.all():
            key = ts.date().isoformat()
            if key in counts:
                counts[key] += 1
        return [DailyViews(date=day, count=n) for day, n in sorted(counts.items())]
