"""
Draft service: user-scoped work-in-progress content and draft publishing.

Draft content is stored as a list of ``{"type": "text", "content": str}``
blocks. Rows written before that schema may still hold a JSON string or a
bare object; ``normalize_draft_content`` reads all of them.
"""
import logging
from typing import Any

from opentelemetry import trace
from sqlalchemy import select

from threadspire.errors import AccessDeniedError, NotFoundError, ValidationError
from threadspire.models import Draft, Thread, ThreadAnalytics, ThreadSegment, utcnow
from threadspire.realtime import DELETE, INSERT, UPDATE
from threadspire.schemas import DraftResponse, ThreadResponse, normalize_draft_content
from threadspire.services.base import Service
from threadspire.services.hydrate import make_snippet
from threadspire.services.threads import ThreadService
from threadspire.telemetry import THREADS_CREATED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class DraftService(Service):

    async def _get_owned(self, draft_id: str) -> Draft:
        user = self.require_viewer()
        draft = await self.db.get(Draft, draft_id)
        if draft is None:
            raise NotFoundError("Draft")
        if draft.user_id != user.id:
            raise AccessDeniedError("This draft belongs to another user")
        return draft

    @staticmethod
    def _stored(content: Any) -> list[dict]:
        return [block.model_dump() for block in normalize_draft_content(content)]

    async def create_draft(self, title: str = "", content: Any = None) -> DraftResponse:
        user = self.require_viewer()
        draft = Draft(
            user_id=user.id,
            title=self.clean_title(title, required=False),
            content=self._stored(content),
        )
        self.db.add(draft)
        await self.db.flush()
        self.stage("drafts", INSERT, id=draft.id, user_id=user.id)
        logger.info("Draft created: %s by user %s", draft.id, user.id)
        return DraftResponse.model_validate(draft)

    async def update_draft(self, draft_id: str, title: str = "", content: Any = None) -> DraftResponse:
        draft = await self._get_owned(draft_id)
        draft.title = self.clean_title(title, required=False)
        draft.content = self._stored(content)
        draft.updated_at = utcnow()
        await self.db.flush()
        self.stage("drafts", UPDATE, id=draft.id, user_id=draft.user_id)
        return DraftResponse.model_validate(draft)

    async def get_draft(self, draft_id: str) -> DraftResponse:
        return DraftResponse.model_validate(await self._get_owned(draft_id))

    async def list_drafts(self) -> list[DraftResponse]:
        user = self.require_viewer()
        rows = await self.db.execute(
            select(Draft)
            .where(Draft.user_id == user.id)
            .order_by(Draft.updated_at.desc(), Draft.id)
        )
        return [DraftResponse.model_validate(d) for d in rows.scalars().all()]

    async def delete_draft(self, draft_id: str) -> None:
        draft = await self._get_owned(draft_id)
        await self.db.delete(draft)
        await self.db.flush()
        self.stage("drafts", DELETE, id=draft_id, user_id=draft.user_id)

    async def publish_draft(self, draft_id: str) -> ThreadResponse:
        """
        Turn a draft into a published thread: one segment per content block,
        snippet from the first block. The draft is deleted afterwards; tags and
        cover image are not part of a draft and are not carried over.
        """
        with tracer.start_as_current_span("publish_draft") as span:
            span.set_attribute("draft.id", draft_id)
            draft = await self._get_owned(draft_id)
            title = (draft.title or "").strip()
            if not title:
                raise ValidationError("Give the draft a title before publishing")
            title = self.clean_title(title)
            blocks = normalize_draft_content(draft.content)

            thread = Thread(
                user_id=draft.user_id,
                title=title,
                is_published=True,
                snippet=make_snippet(
                    blocks[0].content if blocks else None, self.settings.snippet_length
                ),
            )
            self.db.add(thread)
            await self.db.flush()

            self.db.add_all(
                ThreadSegment(thread_id=thread.id, content=block.content, order_index=i)
                for i, block in enumerate(blocks)
            )
            self.db.add(ThreadAnalytics(thread_id=thread.id, view_count=0, unique_viewers=0))
            await self.db.delete(draft)
            await self.db.flush()

            span.set_attribute("thread.id", thread.id)
            self.stage("drafts", DELETE, id=draft_id, user_id=draft.user_id)
            self.stage("threads", INSERT, id=thread.id, user_id=draft.user_id)
            THREADS_CREATED_TOTAL.labels(origin="draft").inc()
            logger.info("Draft %s published as thread %s", draft_id, thread.id)
            return await ThreadService(self.db, self.viewer, self.backend).get_thread_by_id(
                thread.id, record_view=False
            )
