"""
Bookmark service: per-user saved threads.

One row per (thread, user); the unique constraint on the table backs the
existence check, so bookmarking twice stays a no-op.
"""
import logging
from typing import Awaitable, Callable

from sqlalchemy import delete, func, select

from threadspire.errors import ValidationError
from threadspire.models import Bookmark, InteractionType, Thread
from threadspire.realtime import DELETE, INSERT, Subscription
from threadspire.schemas import BookmarkState, ThreadListResponse
from threadspire.services.analytics import AnalyticsService
from threadspire.services.base import Service, visibility_clause
from threadspire.services.hydrate import load_thread_responses

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class BookmarkService(Service):

    async def _find(self, thread_id: str, user_id: str):
        return await self.db.scalar(
            select(Bookmark).where(Bookmark.thread_id == thread_id, Bookmark.user_id == user_id)
        )

    async def is_bookmarked(self, thread_id: str) -> bool:
        if self.viewer is None:
            return False
        return await self._find(thread_id, self.viewer.id) is not None

    async def add_bookmark(self, thread_id: str) -> BookmarkState:
        user = self.require_viewer()
        await self.get_visible_thread(thread_id)
        if await self._find(thread_id, user.id) is None:
            self.db.add(Bookmark(thread_id=thread_id, user_id=user.id))
            await AnalyticsService(self.db, self.viewer, self.backend).log_interaction(
                thread_id, InteractionType.BOOKMARK
            )
            await self.db.flush()
            self.stage("bookmarks", INSERT, thread_id=thread_id, user_id=user.id)
            logger.info("User %s bookmarked thread %s", user.id, thread_id)
        return BookmarkState(thread_id=thread_id, is_bookmarked=True)

    async def remove_bookmark(self, thread_id: str) -> BookmarkState:
        user = self.require_viewer()
        result = await self.db.execute(
            delete(Bookmark).where(Bookmark.thread_id == thread_id, Bookmark.user_id == user.id)
        )
        if result.rowcount:
            self.stage("bookmarks", DELETE, thread_id=thread_id, user_id=user.id)
            logger.info("User %s removed bookmark on thread %s", user.id, thread_id)
        return BookmarkState(thread_id=thread_id, is_bookmarked=False)

    async def toggle_bookmark(self, thread_id: str) -> BookmarkState:
        if await self.is_bookmarked(thread_id):
            return await self.remove_bookmark(thread_id)
        return await self.add_bookmark(thread_id)

    async def get_bookmarked_threads(self, page: int = 1, limit: int = 10) -> ThreadListResponse:
        """The viewer's bookmarked threads, most recently bookmarked first."""
        user = self.require_viewer()
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        criteria = [Bookmark.user_id == user.id, visibility_clause(self.viewer)]
        total = await self.db.scalar(
            select(func.count())
            .select_from(Bookmark)
            .join(Thread, Thread.id == Bookmark.thread_id)
            .where(*criteria)
        )
        rows = await self.db.execute(
            select(Bookmark.thread_id)
            .join(Thread, Thread.id == Bookmark.thread_id)
            .where(*criteria)
            .order_by(Bookmark.created_at.desc(), Bookmark.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        threads = await load_thread_responses(self.db, list(rows.scalars().all()))
        return ThreadListResponse(threads=threads, total=total or 0)

    def subscribe_to_bookmarks(
        self, callback: Callable[[str, bool], Awaitable[None]]
    ) -> Subscription:
        """Call ``callback(thread_id, is_bookmarked)`` whenever the viewer's bookmarks change."""
        user = self.require_viewer()

        async def _on_change(event) -> None:
            await callback(event.row["thread_id"], event.event == INSERT)

        return self.backend.changes.subscribe(
            "bookmarks", _on_change, match={"user_id": user.id}
        )
