"""
Thread endpoints:
  GET    /api/threads                   — list threads (paging, sort, tag / author filter)
  POST   /api/threads                   — create a thread
  GET    /api/threads/trending          — most viewed threads of the last week
  GET    /api/threads/{id}              — fetch one thread (records a view)
  PATCH  /api/threads/{id}              — update (author only)
  DELETE /api/threads/{id}              — delete (author only)
  POST   /api/threads/{id}/fork         — remix into a new unpublished thread
  GET    /api/threads/{id}/analytics    — view_count / unique_viewers
  GET    /api/threads/{id}/views        — views per day
  GET    /api/threads/{id}/interactions — raw interaction log
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from threadspire.dependencies import (
    get_analytics_service,
    get_current_user,
    get_thread_service,
)
from threadspire.schemas import (
    DailyViews,
    InteractionRecord,
    ThreadAnalyticsResponse,
    ThreadCreate,
    ThreadListResponse,
    ThreadResponse,
    ThreadUpdate,
    TrendingThread,
)
from threadspire.services.analytics import AnalyticsService
from threadspire.services.threads import ThreadService

logger = logging.getLogger(__name__)
router = APIRouter()


def _split_tags(tags: list[str]) -> list[str]:
    # ?tags=a,b and ?tags=a&tags=b are both accepted
    return [t for raw in tags for t in raw.split(",") if t.strip()]


@router.get("", response_model=ThreadListResponse)
async def list_threads(
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    tags: list[str] = Query(default=[]),
    user_id: Optional[str] = None,
    include_unpublished: bool = False,
    threads: ThreadService = Depends(get_thread_service),
):
    return await threads.get_threads(
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        tags=_split_tags(tags),
        user_id=user_id,
        only_published=not include_unpublished,
    )


@router.post(
    "",
    response_model=ThreadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_user)],
)
async def create_thread(body: ThreadCreate, threads: ThreadService = Depends(get_thread_service)):
    return await threads.create_thread(
        title=body.title,
        segments=body.segments,
        tags=body.tags,
        cover_image=body.cover_image,
        is_published=body.is_published,
        is_private=body.is_private,
    )


@router.get("/trending", response_model=list[TrendingThread])
async def trending_threads(
    limit: int = 5, analytics: AnalyticsService = Depends(get_analytics_service)
):
    return await analytics.get_trending_threads(limit)


@router.get("/{thread_id}", response_model=ThreadResponse)
async def get_thread(thread_id: str, threads: ThreadService = Depends(get_thread_service)):
    return await threads.get_thread_by_id(thread_id)


@router.patch("/{thread_id}", response_model=ThreadResponse)
async def update_thread(
    thread_id: str, body: ThreadUpdate, threads: ThreadService = Depends(get_thread_service)
):
    return await threads.update_thread(thread_id, **body.model_dump(exclude_unset=True))


@router.delete("/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_thread(thread_id: str, threads: ThreadService = Depends(get_thread_service)):
    await threads.delete_thread(thread_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{thread_id}/fork", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED)
async def fork_thread(thread_id: str, threads: ThreadService = Depends(get_thread_service)):
    return await threads.fork_thread(thread_id)


# ── Analytics ──────────────────────────────────────────────────────────────

@router.get("/{thread_id}/analytics", response_model=ThreadAnalyticsResponse)
async def thread_analytics(
    thread_id: str, analytics: AnalyticsService = Depends(get_analytics_service)
):
    return await analytics.get_thread_analytics(thread_id)


@router.get("/{thread_id}/views", response_model=list[DailyViews])
async def thread_views_by_day(
    thread_id: str, days: int = 30, analytics: AnalyticsService = Depends(get_analytics_service)
):
    return await analytics.get_thread_views_by_day(thread_id, days)


@router.get("/{thread_id}/interactions", response_model=list[InteractionRecord])
async def thread_interactions(
    thread_id: str, analytics: AnalyticsService = Depends(get_analytics_service)
):
    return await analytics.get_thread_interactions(thread_id)
