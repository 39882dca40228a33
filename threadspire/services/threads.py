"""
Thread service: create, read, list, update, fork and delete threads.

A thread is written together with its child rows:

  threads            one row, snippet = first segment[:snippet_length]
  thread_segments    one row per segment, order_index = position
  tags / thread_tags get-or-create each tag by name, then link it
  thread_analytics   zeroed counters

All rows of one call are written in the request's session and commit
together. Reads go through ``load_thread_responses`` so every endpoint returns
the same hydrated shape (segments, tag names, author, reaction counts).
"""
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, Union

from opentelemetry import trace
from sqlalchemy import asc, delete, desc, func, or_, select, update

from threadspire.errors import NotFoundError, ValidationError
from threadspire.models import (
    Bookmark,
    Collection,
    CollectionThread,
    InteractionLog,
    InteractionType,
    Reaction,
    Tag,
    Thread,
    ThreadAnalytics,
    ThreadSegment,
    ThreadTag,
    utcnow,
)
from threadspire.realtime import DELETE, INSERT, UPDATE, Subscription
from threadspire.schemas import SegmentInput, ThreadListResponse, ThreadResponse
from threadspire.services.analytics import AnalyticsService
from threadspire.services.base import Service, ensure_visible, visibility_clause
from threadspire.services.hydrate import (
    load_thread_responses,
    make_snippet,
    reaction_counts_for,
    thread_query,
    to_thread_response,
)
from threadspire.telemetry import THREAD_LOAD_LATENCY, THREADS_CREATED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SORTABLE_COLUMNS = {
    "created_at": Thread.created_at,
    "updated_at": Thread.updated_at,
    "title": Thread.title,
    "fork_count": Thread.fork_count,
}
MAX_PAGE_SIZE = 100
UNCHANGED = object()


class ThreadService(Service):

    # ─────────────────────── Validation ───────────────────────────────────

    def _clean_segments(
        self, segments: Iterable[Union[str, dict, SegmentInput]]
    ) -> list[SegmentInput]:
        cleaned = []
        for i, seg in enumerate(segments):
            if isinstance(seg, str):
                seg = SegmentInput(content=seg)
            elif isinstance(seg, dict):
                seg = SegmentInput(**seg)
            if not seg.content.strip():
                raise ValidationError(f"Segment {i + 1} is empty")
            cleaned.append(
                SegmentInput(
                    content=seg.content,
                    order_index=seg.order_index if seg.order_index is not None else i,
                )
            )
        if not cleaned:
            raise ValidationError("A thread needs at least one segment")
        return sorted(cleaned, key=lambda s: s.order_index)

    def _clean_tags(self, tags: Iterable[str]) -> list[str]:
        names: list[str] = []
        for raw in tags:
            name = raw.strip().lower()
            if not name or name in names:
                continue
            if len(name) > self.settings.tag_max_length:
                raise ValidationError(
                    f"Tag '{name}' is longer than {self.settings.tag_max_length} characters"
                )
            names.append(name)
        if len(names) > self.settings.max_tags:
            raise ValidationError(f"A thread can have at most {self.settings.max_tags} tags")
        return names

    # ─────────────────────── Write helpers ────────────────────────────────

    async def _get_or_create_tag(self, name: str) -> Tag:
        tag = await self.db.scalar(select(Tag).where(Tag.name == name))
        if tag is None:
            tag = Tag(name=name)
            self.db.add(tag)
            await self.db.flush()
        return tag

    async def _link_tags(self, thread_id: str, names: Iterable[str]) -> None:
        for name in names:
            tag = await self._get_or_create_tag(name)
            self.db.add(ThreadTag(thread_id=thread_id, tag_id=tag.id))

    def _add_segments(self, thread_id: str, segments: Sequence[SegmentInput]) -> None:
        self.db.add_all(
            ThreadSegment(thread_id=thread_id, content=s.content, order_index=s.order_index)
            for s in segments
        )

    def _snippet(self, content: Optional[str]) -> Optional[str]:
        return make_snippet(content, self.settings.snippet_length)

    # ─────────────────────── Operations ───────────────────────────────────

    async def create_thread(
        self,
        title: str,
        segments: Sequence[Union[str, dict, SegmentInput]],
        tags: Iterable[str] = (),
        cover_image: Optional[str] = None,
        is_published: bool = True,
        is_private: bool = False,
    ) -> ThreadResponse:
        with tracer.start_as_current_span("create_thread") as span:
            user = self.require_viewer()
            title = self.clean_title(title)
            segs = [
                SegmentInput(content=s.content, order_index=i)
                for i, s in enumerate(self._clean_segments(segments))
            ]
            tag_names = self._clean_tags(tags)

            thread = Thread(
                user_id=user.id,
                title=title,
                cover_image=cover_image,
                snippet=self._snippet(segs[0].content),
                is_published=is_published,
                is_private=is_private,
            )
            self.db.add(thread)
            await self.db.flush()  # materialise thread.id

            self._add_segments(thread.id, segs)
            await self._link_tags(thread.id, tag_names)
            self.db.add(ThreadAnalytics(thread_id=thread.id, view_count=0, unique_viewers=0))
            await self.db.flush()

            span.set_attribute("thread.id", thread.id)
            span.set_attribute("thread.segments", len(segs))
            self.stage("threads", INSERT, id=thread.id, user_id=user.id)
            THREADS_CREATED_TOTAL.labels(origin="new").inc()
            logger.info("Thread created: %s by user %s", thread.id, user.id)
            return await self.get_thread_by_id(thread.id, record_view=False)

    async def fork_thread(self, original_id: str) -> ThreadResponse:
        """Copy a thread (segments + tags) into a new unpublished thread of the viewer."""
        with tracer.start_as_current_span("fork_thread") as span:
            user = self.require_viewer()
            original = await self.get_thread_by_id(original_id)

            fork = Thread(
                user_id=user.id,
                title=f"{original.title} (Remix)",
                cover_image=original.cover_image,
                snippet=self._snippet(original.segments[0].content if original.segments else None),
                is_published=False,
                is_private=False,
                original_thread_id=original.id,
            )
            self.db.add(fork)
            await self.db.flush()

            self._add_segments(
                fork.id,
                [
                    SegmentInput(content=s.content, order_index=i)
                    for i, s in enumerate(original.segments)
                ],
            )
            await self._link_tags(fork.id, original.tags)

            await self.db.execute(
                update(Thread)
                .where(Thread.id == original.id)
                .values(fork_count=Thread.fork_count + 1)
            )

            await AnalyticsService(self.db, self.viewer, self.backend).log_interaction(
                original.id, InteractionType.FORK
            )
            self.db.add(ThreadAnalytics(thread_id=fork.id, view_count=0, unique_viewers=0))
            await self.db.flush()

            span.set_attribute("thread.id", fork.id)
            span.set_attribute("thread.original_id", original.id)
            self.stage("threads", INSERT, id=fork.id, user_id=user.id)
            self.stage("threads", UPDATE, id=original.id, user_id=original.user_id)
            THREADS_CREATED_TOTAL.labels(origin="fork").inc()
            logger.info("Thread %s forked into %s by user %s", original.id, fork.id, user.id)
            return await self.get_thread_by_id(fork.id, record_view=False)

    async def get_thread_by_id(self, thread_id: str, record_view: bool = True) -> ThreadResponse:
        """
        Load one thread with segments, tags, author and reaction counts.

        Private threads are visible to their author only. Unless
        ``record_view`` is False, the read is logged as a view and bumps the
        thread's view counters.
        """
        start = time.perf_counter()
        thread = await self.db.scalar(thread_query().where(Thread.id == thread_id))
        if thread is None:
            raise NotFoundError("Thread")
        ensure_visible(thread, self.viewer)

        counts = await reaction_counts_for(self.db, [thread.id])
        response = to_thread_response(thread, counts[thread.id])

        if record_view:
            await AnalyticsService(self.db, self.viewer, self.backend).log_thread_view(thread.id)

        THREAD_LOAD_LATENCY.observe(time.perf_counter() - start)
        return response

    async def get_threads(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        tags: Sequence[str] = (),
        user_id: Optional[str] = None,
        only_published: bool = True,
    ) -> ThreadListResponse:
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        column = SORTABLE_COLUMNS.get(sort_by)
        if column is None:
            raise ValidationError(f"Cannot sort by '{sort_by}'")
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sort_order must be 'asc' or 'desc'")

        criteria = [visibility_clause(self.viewer)]
        if only_published:
            criteria.append(Thread.is_published.is_(True))
        elif self.viewer is not None:
            criteria.append(
                or_(Thread.is_published.is_(True), Thread.user_id == self.viewer.id)
            )
        else:
            criteria.append(Thread.is_published.is_(True))
        if user_id:
            criteria.append(Thread.user_id == user_id)
        tag_names = [t.strip().lower() for t in tags if t.strip()]
        if tag_names:
            tagged = (
                select(ThreadTag.thread_id)
                .join(Tag, Tag.id == ThreadTag.tag_id)
                .where(Tag.name.in_(tag_names))
            )
            criteria.append(Thread.id.in_(tagged))

        total = await self.db.scalar(
            select(func.count()).select_from(Thread).where(*criteria)
        )
        direction = asc if sort_order == "asc" else desc
        rows = await self.db.execute(
            select(Thread.id)
            .where(*criteria)
            .order_by(direction(column), Thread.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        ids = list(rows.scalars().all())
        threads = await load_thread_responses(self.db, ids)
        return ThreadListResponse(threads=threads, total=total or 0)

    async def update_thread(
        self,
        thread_id: str,
        title: Optional[str] = None,
        is_published: Optional[bool] = None,
        is_private: Optional[bool] = None,
        segments: Optional[Sequence[Union[str, dict, SegmentInput]]] = None,
        tags: Optional[Iterable[str]] = None,
        cover_image: Any = UNCHANGED,
    ) -> ThreadResponse:
        """
        Apply the given fields; segments and tags are replaced wholesale.
        ``cover_image=None`` clears the cover, leaving it out keeps it.
        """
        with tracer.start_as_current_span("update_thread") as span:
            span.set_attribute("thread.id", thread_id)
            thread = await self.get_owned_thread(thread_id)

            if title is not None:
                thread.title = self.clean_title(title)
            if is_published is not None:
                thread.is_published = is_published
            if is_private is not None:
                thread.is_private = is_private
            if cover_image is not UNCHANGED:
                thread.cover_image = cover_image

            if segments is not None:
                segs = self._clean_segments(segments)
                thread.snippet = self._snippet(segs[0].content)
                await self.db.execute(
                    delete(ThreadSegment).where(ThreadSegment.thread_id == thread_id)
                )
                self._add_segments(thread_id, segs)

            if tags is not None:
                tag_names = self._clean_tags(tags)
                await self.db.execute(delete(ThreadTag).where(ThreadTag.thread_id == thread_id))
                await self._link_tags(thread_id, tag_names)

            thread.updated_at = utcnow()
            await self.db.flush()

            self.stage("threads", UPDATE, id=thread_id, user_id=thread.user_id)
            logger.info("Thread updated: %s", thread_id)
            return await self.get_thread_by_id(thread_id, record_view=False)

    async def delete_thread(self, thread_id: str) -> None:
        with tracer.start_as_current_span("delete_thread"):
            thread = await self.get_owned_thread(thread_id)
            owner_id = thread.user_id

            bookmarkers = (
                await self.db.execute(
                    select(Bookmark.user_id).where(Bookmark.thread_id == thread_id)
                )
            ).scalars().all()
            collections = (
                await self.db.execute(
                    select(Collection.id, Collection.user_id)
                    .join(CollectionThread, CollectionThread.collection_id == Collection.id)
                    .where(CollectionThread.thread_id == thread_id)
                )
            ).all()
            had_reactions = await self.db.scalar(
                select(func.count()).select_from(Reaction).where(Reaction.thread_id == thread_id)
            )

            for model in (
                ThreadSegment,
                ThreadTag,
                Reaction,
                Bookmark,
                ThreadAnalytics,
                InteractionLog,
                CollectionThread,
            ):
                await self.db.execute(delete(model).where(model.thread_id == thread_id))
            await self.db.execute(
                update(Thread)
                .where(Thread.original_thread_id == thread_id)
                .values(original_thread_id=None)
            )
            await self.db.execute(delete(Thread).where(Thread.id == thread_id))
            await self.db.flush()

            self.stage("threads", DELETE, id=thread_id, user_id=owner_id)
            for user_id in bookmarkers:
                self.stage("bookmarks", DELETE, thread_id=thread_id, user_id=user_id)
            if had_reactions:
                self.stage("reactions", DELETE, thread_id=thread_id)
            for collection_id, user_id in collections:
                self.stage("collections", UPDATE, id=collection_id, user_id=user_id)
            logger.info("Thread deleted: %s", thread_id)

    def subscribe_to_thread(
        self,
        thread_id: str,
        callback: Callable[[Optional[ThreadResponse]], Awaitable[None]],
    ) -> Subscription:
        """
        Call ``callback`` with the freshly loaded thread after every committed
        change to the thread row, or with None once it has been deleted.
        """
        viewer, backend = self.viewer, self.backend

        async def _on_change(event) -> None:
            if event.event == DELETE:
                await callback(None)
                return
            async with backend.session() as db:
                thread = await ThreadService(db, viewer, backend).get_thread_by_id(
                    thread_id, record_view=False
                )
            await callback(thread)

        return backend.changes.subscribe("threads", _on_change, match={"id": thread_id})
