"""
Read-side helpers that turn ``threads`` rows into ``ThreadResponse`` objects.

Every endpoint returning threads goes through ``load_thread_responses`` so
the shape is the same everywhere: ordered segments, tag names, author
display info and zero-filled reaction counts.
"""
from collections import defaultdict
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from threadspire.models import Reaction, Thread
from threadspire.schemas import (
    AuthorInfo,
    SegmentResponse,
    ThreadResponse,
    empty_reaction_counts,
)


def thread_query():
    return (
        select(Thread)
        .options(
            selectinload(Thread.segments),
            selectinload(Thread.tags),
            selectinload(Thread.author),
        )
        .execution_options(populate_existing=True)
    )


async def reaction_counts_for(
    db: AsyncSession, thread_ids: Sequence[str]
) -> dict[str, dict[str, int]]:
    """Per-thread counts for every reaction type, zero-filled."""
    counts: dict[str, dict[str, int]] = defaultdict(empty_reaction_counts)
    if not thread_ids:
        return counts
    rows = await db.execute(
        select(Reaction.thread_id, Reaction.type, func.count(Reaction.id))
        .where(Reaction.thread_id.in_(thread_ids))
        .group_by(Reaction.thread_id, Reaction.type)
    )
    for thread_id, rtype, n in rows.all():
        if rtype in counts[thread_id]:
            counts[thread_id][rtype] = n
    return counts


def to_thread_response(thread: Thread, reaction_counts: dict[str, int]) -> ThreadResponse:
    author = thread.author
    return ThreadResponse(
        id=thread.id,
        user_id=thread.user_id,
        title=thread.title,
        cover_image=thread.cover_image,
        snippet=thread.snippet,
        is_published=thread.is_published,
        is_private=thread.is_private,
        fork_count=thread.fork_count,
        original_thread_id=thread.original_thread_id,
        created_at=thread.created_at,
        updated_at=thread.updated_at,
        segments=[SegmentResponse.model_validate(s) for s in thread.segments],
        tags=sorted(t.name for t in thread.tags),
        reaction_counts=reaction_counts,
        author=AuthorInfo(
            id=thread.user_id,
            name=(author.name if author and author.name else "Anonymous"),
            avatar=author.avatar_url if author else None,
        ),
    )


async def load_thread_responses(
    db: AsyncSession, thread_ids: Sequence[str], *criteria
) -> list[ThreadResponse]:
    """Hydrate threads by id, keeping the order of ``thread_ids``."""
    if not thread_ids:
        return []
    rows = await db.execute(thread_query().where(Thread.id.in_(thread_ids), *criteria))
    by_id = {t.id: t for t in rows.scalars().all()}
    counts = await reaction_counts_for(db, list(by_id))
    return [
        to_thread_response(by_id[tid], counts[tid]) for tid in thread_ids if tid in by_id
    ]


def make_snippet(content: Optional[str], length: int = 150) -> Optional[str]:
    if not content:
        return None
    return content[:length]


