"""
Shared plumbing for the service layer.

A service is built per request from three injected collaborators:
  db      — the request's AsyncSession (one unit of work)
  viewer  — the authenticated Profile, or None for anonymous callers
  backend — engine / session factory / change feed / settings
"""
import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from threadspire.config import Settings
from threadspire.database import Backend
from threadspire.errors import (
    AccessDeniedError,
    AuthenticationError,
    NotFoundError,
    ValidationError,
)
from threadspire.models import ANONYMOUS_USER_ID, Profile, Thread
from threadspire.realtime import ChangeFeed

logger = logging.getLogger(__name__)


def visibility_clause(viewer: Optional[Profile]):
    """Rows of ``threads`` the viewer may see: public ones plus their own."""
    if viewer is None:
        return Thread.is_private.is_(False)
    return or_(Thread.is_private.is_(False), Thread.user_id == viewer.id)


def ensure_visible(thread: Thread, viewer: Optional[Profile]) -> None:
    if not thread.is_private:
        return
    if viewer is None:
        raise AccessDeniedError("This thread is private. Please log in to view it.")
    if viewer.id != thread.user_id:
        raise AccessDeniedError("This thread is private.")


class Service:
    def __init__(self, db: AsyncSession, viewer: Optional[Profile], backend: Backend):
        self.db = db
        self.viewer = viewer
        self.backend = backend

    @property
    def settings(self) -> Settings:
        return self.backend.settings

    @property
    def viewer_id(self) -> str:
        return self.viewer.id if self.viewer is not None else ANONYMOUS_USER_ID

    def require_viewer(self) -> Profile:
        if self.viewer is None:
            raise AuthenticationError()
        return self.viewer

    def clean_title(self, title: Optional[str], required: bool = True) -> str:
        """Strip and length-check a thread or draft title."""
        title = (title or "").strip()
        if required and not title:
            raise ValidationError("Title is required")
        if len(title) > self.settings.title_max_length:
            raise ValidationError(
                f"Title must be at most {self.settings.title_max_length} characters"
            )
        return title

    def stage(self, table: str, event: str, **row) -> None:
        ChangeFeed.stage(self.db, table, event, row)

    async def get_visible_thread(self, thread_id: str) -> Thread:
        thread = await self.db.get(Thread, thread_id)
        if thread is None:
            raise NotFoundError("Thread")
        ensure_visible(thread, self.viewer)
        return thread

    async def get_owned_thread(self, thread_id: str) -> Thread:
        user = self.require_viewer()
        thread = await self.db.get(Thread, thread_id)
        if thread is None:
            raise NotFoundError("Thread")
        if thread.user_id != user.id:
            raise AccessDeniedError("Only the author can change this thread")
        return thread
