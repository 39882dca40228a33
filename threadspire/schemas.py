"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
"""
import json
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from threadspire.models import ReactionType


# ──────────────────────────── Auth / Profiles ─────────────────────────────

class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str
    password: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = None
    avatar_url: Optional[str] = Field(None, max_length=500)


class ProfileResponse(BaseModel):
    id: str
    email: str
    name: Optional[str]
    bio: Optional[str]
    avatar_url: Optional[str]
    followers_count: int
    following_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PublicProfileResponse(BaseModel):
    """A profile as other users see it (no email)."""
    id: str
    name: Optional[str]
    bio: Optional[str]
    avatar_url: Optional[str]
    followers_count: int
    following_count: int

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str


# ──────────────────────────── Threads ─────────────────────────────────────

class SegmentInput(BaseModel):
    content: str
    order_index: Optional[int] = None


class ThreadCreate(BaseModel):
    title: str
    segments: list[str]
    tags: list[str] = []
    cover_image: Optional[str] = None
    is_published: bool = True
    is_private: bool = False


class ThreadUpdate(BaseModel):
    title: Optional[str] = None
    is_published: Optional[bool] = None
    is_private: Optional[bool] = None
    segments: Optional[list[SegmentInput]] = None
    tags: Optional[list[str]] = None
    cover_image: Optional[str] = None


class SegmentResponse(BaseModel):
    id: str
    thread_id: str
    content: str
    order_index: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AuthorInfo(BaseModel):
    id: str
    name: str
    avatar: Optional[str]


def empty_reaction_counts() -> dict[str, int]:
    return {r.value: 0 for r in ReactionType}


class ThreadResponse(BaseModel):
    id: str
    user_id: str
    title: str
    cover_image: Optional[str]
    snippet: Optional[str]
    is_published: bool
    is_private: bool
    fork_count: int
    original_thread_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    segments: list[SegmentResponse]
    tags: list[str]
    reaction_counts: dict[str, int] = Field(default_factory=empty_reaction_counts)
    author: AuthorInfo


class ThreadListResponse(BaseModel):
    threads: list[ThreadResponse]
    total: int


class TrendingThread(ThreadResponse):
    recent_views: int


# ──────────────────────────── Drafts ──────────────────────────────────────

class DraftBlock(BaseModel):
    """One block of draft content. Only text blocks exist today."""
    type: Literal["text"] = "text"
    content: str


def normalize_draft_content(raw: Any) -> list[DraftBlock]:
    """
    Coerce stored or submitted draft content into a list of blocks.

    Accepted shapes:
      • a list of blocks / strings / arbitrary values
      • a JSON-encoded string of any of these
      • a plain (non-JSON) string → a single text block
      • a bare object → a single block
    Block content that is not a string is JSON-stringified.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except ValueError:
            return [DraftBlock(content=raw)]
        if isinstance(decoded, str):
            return [DraftBlock(content=decoded)]
        return normalize_draft_content(decoded)
    if not isinstance(raw, list):
        raw = [raw]

    blocks = []
    for item in raw:
        if isinstance(item, DraftBlock):
            blocks.append(item)
        elif isinstance(item, dict) and isinstance(item.get("content"), str):
            blocks.append(DraftBlock(content=item["content"]))
        elif isinstance(item, str):
            blocks.append(DraftBlock(content=item))
        else:
            blocks.append(DraftBlock(content=json.dumps(item, default=str)))
    return blocks


class DraftCreate(BaseModel):
    title: str = ""
    content: list[DraftBlock] = []

    @field_validator("content", mode="before")
    @classmethod
    def _normalize(cls, v):
        return normalize_draft_content(v)


class DraftUpdate(DraftCreate):
    pass


class DraftResponse(BaseModel):
    id: str
    user_id: str
    title: str
    content: list[DraftBlock]
    is_published: bool
    created_at: datetime
    updated_at: datetime

    @field_validator("content", mode="before")
    @classmethod
    def _normalize(cls, v):
        return normalize_draft_content(v)

    class Config:
        from_attributes = True


# ──────────────────────────── Reactions / Bookmarks ───────────────────────

class ReactionCount(BaseModel):
    type: ReactionType
    count: int


class ReactionUser(BaseModel):
    user_id: str
    type: ReactionType
    user_name: str
    user_avatar: Optional[str]
    created_at: datetime


class ReactionState(BaseModel):
    thread_id: str
    type: ReactionType
    active: bool


class BookmarkState(BaseModel):
    thread_id: str
    is_bookmarked: bool


# ──────────────────────────── Follows ─────────────────────────────────────

class FollowState(BaseModel):
    user_id: str
    is_following: bool
    followers_count: int
    following_count: int


class FollowCounts(BaseModel):
    user_id: str
    followers_count: int
    following_count: int


# ──────────────────────────── Analytics ───────────────────────────────────

class ThreadAnalyticsResponse(BaseModel):
    view_count: int = 0
    unique_viewers: int = 0


class DailyViews(BaseModel):
    date: str  # YYYY-MM-DD
    count: int


class InteractionRecord(BaseModel):
    interaction_type: str
    created_at: datetime


# ──────────────────────────── Collections ─────────────────────────────────

class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    is_private: bool = True


class CollectionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_private: Optional[bool] = None


class CollectionResponse(BaseModel):
    id: str
    user_id: str
    name: str
    is_private: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CollectionWithThreads(CollectionResponse):
    threads: list[ThreadResponse] = []
