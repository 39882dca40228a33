"""
Bookmark endpoints:
  GET    /api/bookmarks                      — the caller's bookmarked threads
  GET    /api/threads/{id}/bookmark          — is the thread bookmarked?
  PUT    /api/threads/{id}/bookmark          — bookmark (idempotent)
  DELETE /api/threads/{id}/bookmark          — remove the bookmark
  POST   /api/threads/{id}/bookmark/toggle   — flip and return the new state
"""
import logging

from fastapi import APIRouter, Depends

from threadspire.dependencies import get_bookmark_service
from threadspire.schemas import BookmarkState, ThreadListResponse
from threadspire.services.bookmarks import BookmarkService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/bookmarks", response_model=ThreadListResponse)
async def list_bookmarks(
    page: int = 1, limit: int = 10, bookmarks: BookmarkService = Depends(get_bookmark_service)
):
    return await bookmarks.get_bookmarked_threads(page, limit)


@router.get("/threads/{thread_id}/bookmark", response_model=BookmarkState)
async def bookmark_state(thread_id: str, bookmarks: BookmarkService = Depends(get_bookmark_service)):
    return BookmarkState(thread_id=thread_id, is_bookmarked=await bookmarks.is_bookmarked(thread_id))


@router.put("/threads/{thread_id}/bookmark", response_model=BookmarkState)
async def add_bookmark(thread_id: str, bookmarks: BookmarkService = Depends(get_bookmark_service)):
    return await bookmarks.add_bookmark(thread_id)


@router.delete("/threads/{thread_id}/bookmark", response_model=BookmarkState)
async def remove_bookmark(thread_id: str, bookmarks: BookmarkService = Depends(get_bookmark_service)):
    return await bookmarks.remove_bookmark(thread_id)


@router.post("/threads/{thread_id}/bookmark/toggle", response_model=BookmarkState)
async def toggle_bookmark(thread_id: str, bookmarks: BookmarkService = Depends(get_bookmark_service)):
    return await bookmarks.toggle_bookmark(thread_id)
