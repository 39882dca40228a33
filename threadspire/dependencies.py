"""
FastAPI dependencies: the viewer behind a request and per-request services.

The viewer comes from an ``Authorization: Bearer <token>`` header. Endpoints
that work for anonymous callers use ``get_optional_user``; the rest use
``get_current_user`` which answers 401 without a valid token.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from threadspire.clients.mailer import Mailer
from threadspire.clients.redis_client import RateLimiter
from threadspire.database import Backend, get_backend, get_db
from threadspire.errors import AuthenticationError
from threadspire.models import Profile
from threadspire.security import decode_token
from threadspire.services.analytics import AnalyticsService
from threadspire.services.auth import AuthService
from threadspire.services.bookmarks import BookmarkService
from threadspire.services.collections import CollectionService
from threadspire.services.drafts import DraftService
from threadspire.services.follows import FollowService
from threadspire.services.reactions import ReactionService
from threadspire.services.threads import ThreadService

bearer = HTTPBearer(auto_error=False)


async def resolve_token(db: AsyncSession, backend: Backend, token: Optional[str]) -> Optional[Profile]:
    """Profile a bearer token belongs to; None for no token."""
    if not token:
        return None
    user_id = decode_token(backend.settings, token)
    profile = await db.get(Profile, user_id)
    if profile is None:
        raise AuthenticationError("Invalid or expired token")
    return profile


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
    backend: Backend = Depends(get_backend),
) -> Optional[Profile]:
    return await resolve_token(db, backend, credentials.credentials if credentials else None)


async def get_current_user(user: Optional[Profile] = Depends(get_optional_user)) -> Profile:
    if user is None:
        raise AuthenticationError()
    return user


def get_rate_limiter(request: Request) -> Optional[RateLimiter]:
    return getattr(request.app.state, "rate_limiter", None)


def get_mailer(request: Request) -> Optional[Mailer]:
    return getattr(request.app.state, "mailer", None)


def _service(cls):
    def factory(
        db: AsyncSession = Depends(get_db),
        viewer: Optional[Profile] = Depends(get_optional_user),
        backend: Backend = Depends(get_backend),
    ):
        return cls(db, viewer, backend)

    factory.__name__ = f"get_{cls.__name__}"
    return factory


get_thread_service = _service(ThreadService)
get_draft_service = _service(DraftService)
get_bookmark_service = _service(BookmarkService)
get_reaction_service = _service(ReactionService)
get_follow_service = _service(FollowService)
get_analytics_service = _service(AnalyticsService)
get_collection_service = _service(CollectionService)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    viewer: Optional[Profile] = Depends(get_optional_user),
    backend: Backend = Depends(get_backend),
    rate_limiter: Optional[RateLimiter] = Depends(get_rate_limiter),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> AuthService:
    return AuthService(db, viewer, backend, rate_limiter, mailer)
