"""
Realtime WebSocket endpoints:
  /ws/threads/{id}            — the thread after every change; null once deleted
  /ws/threads/{id}/reactions  — reaction counts after every reaction change
  /ws/bookmarks               — {thread_id, is_bookmarked} for the caller (token required)
  /ws/users/{id}/follows      — follower / following counts of a user

Clients authenticate with ``?token=<access token>``. Every socket first
receives the current state, then one message per committed change. The
subscription is dropped when the client disconnects.

Service errors close the socket with code 4000 + HTTP status (e.g. 4404).
"""
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from threadspire.database import Backend
from threadspire.dependencies import resolve_token
from threadspire.errors import ThreadSpireError
from threadspire.models import Profile
from threadspire.realtime import Subscription
from threadspire.services.bookmarks import BookmarkService
from threadspire.services.follows import FollowService
from threadspire.services.reactions import ReactionService
from threadspire.services.threads import ThreadService
from threadspire.telemetry import REALTIME_SUBSCRIBERS

logger = logging.getLogger(__name__)
router = APIRouter()


def _backend(websocket: WebSocket) -> Backend:
    return websocket.app.state.backend


async def _viewer(websocket: WebSocket, backend: Backend) -> Optional[Profile]:
    async with backend.session() as db:
        return await resolve_token(db, backend, websocket.query_params.get("token"))


async def _hold(websocket: WebSocket, subscription: Subscription) -> None:
    """Keep the socket open until the client goes away, then unsubscribe."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
        logger.debug("Realtime subscription on %s closed", subscription.table)


def _sender(websocket: WebSocket):
    async def send(payload) -> None:
        await websocket.send_json(jsonable_encoder(payload))

    return send


@router.websocket("/threads/{thread_id}")
async def thread_changes(websocket: WebSocket, thread_id: str):
    await websocket.accept()
    backend = _backend(websocket)
    send = _sender(websocket)
    try:
        viewer = await _viewer(websocket, backend)
        async with backend.session() as db:
            current = await ThreadService(db, viewer, backend).get_thread_by_id(
                thread_id, record_view=False
            )
    except ThreadSpireError as exc:
        await websocket.close(code=4000 + exc.status_code, reason=exc.message)
        return
    await send(current)
    REALTIME_SUBSCRIBERS.labels(channel="thread").inc()
    subscription = ThreadService(None, viewer, backend).subscribe_to_thread(thread_id, send)
    await _hold(websocket, subscription)


@router.websocket("/threads/{thread_id}/reactions")
async def reaction_changes(websocket: WebSocket, thread_id: str):
    await websocket.accept()
    backend = _backend(websocket)
    send = _sender(websocket)
    try:
        viewer = await _viewer(websocket, backend)
        async with backend.session() as db:
            current = await ReactionService(db, viewer, backend).get_reaction_counts(thread_id)
    except ThreadSpireError as exc:
        await websocket.close(code=4000 + exc.status_code, reason=exc.message)
        return
    await send(current)
    REALTIME_SUBSCRIBERS.labels(channel="reactions").inc()
    subscription = ReactionService(None, viewer, backend).subscribe_to_reactions(thread_id, send)
    await _hold(websocket, subscription)


@router.websocket("/bookmarks")
async def bookmark_changes(websocket: WebSocket):
    await websocket.accept()
    backend = _backend(websocket)
    send = _sender(websocket)
    try:
        viewer = await _viewer(websocket, backend)
        async with backend.session() as db:
            current = await BookmarkService(db, viewer, backend).get_bookmarked_threads()
    except ThreadSpireError as exc:
        await websocket.close(code=4000 + exc.status_code, reason=exc.message)
        return
    await send(current)

    async def on_change(thread_id: str, is_bookmarked: bool) -> None:
        await send({"thread_id": thread_id, "is_bookmarked": is_bookmarked})

    REALTIME_SUBSCRIBERS.labels(channel="bookmarks").inc()
    subscription = BookmarkService(None, viewer, backend).subscribe_to_bookmarks(on_change)
    await _hold(websocket, subscription)


@router.websocket("/users/{user_id}/follows")
async def follow_changes(websocket: WebSocket, user_id: str):
    await websocket.accept()
    backend = _backend(websocket)
    send = _sender(websocket)
    try:
        viewer = await _viewer(websocket, backend)
        async with backend.session() as db:
            current = await FollowService(db, viewer, backend).get_counts(user_id)
    except ThreadSpireError as exc:
        await websocket.close(code=4000 + exc.status_code, reason=exc.message)
        return
    await send(current)
    REALTIME_SUBSCRIBERS.labels(channel="follows").inc()
    subscription = FollowService(None, viewer, backend).subscribe_to_follows(user_id, send)
    await _hold(websocket, subscription)
