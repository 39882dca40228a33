"""
Reaction endpoints:
  GET    /api/threads/{id}/reactions         — counts for all five types
  GET    /api/threads/{id}/reactions/mine    — the caller's reaction types
  GET    /api/threads/{id}/reactions/users   — who reacted, newest first
  POST   /api/threads/{id}/reactions/{type}  — add (idempotent)
  DELETE /api/threads/{id}/reactions/{type}  — remove
  POST   /api/threads/{id}/reactions/{type}/toggle

``{type}`` is the emoji itself or its name (``fire``, ``brain``, …).
"""
import logging

from fastapi import APIRouter, Depends

from threadspire.dependencies import get_current_user, get_reaction_service
from threadspire.models import ReactionType
from threadspire.schemas import ReactionCount, ReactionState, ReactionUser
from threadspire.services.reactions import ReactionService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{thread_id}/reactions", response_model=list[ReactionCount])
async def reaction_counts(
    thread_id: str, reactions: ReactionService = Depends(get_reaction_service)
):
    return await reactions.get_reaction_counts(thread_id)


@router.get(
    "/{thread_id}/reactions/mine",
    response_model=list[ReactionType],
    dependencies=[Depends(get_current_user)],
)
async def my_reactions(thread_id: str, reactions: ReactionService = Depends(get_reaction_service)):
    return await reactions.get_user_reactions(thread_id)


@router.get("/{thread_id}/reactions/users", response_model=list[ReactionUser])
async def reaction_users(
    thread_id: str, reactions: ReactionService = Depends(get_reaction_service)
):
    return await reactions.get_reaction_users(thread_id)


@router.post("/{thread_id}/reactions/{reaction_type}", response_model=ReactionState)
async def add_reaction(
    thread_id: str,
    reaction_type: str,
    reactions: ReactionService = Depends(get_reaction_service),
):
    return await reactions.add_reaction(thread_id, reaction_type)


@router.delete("/{thread_id}/reactions/{reaction_type}", response_model=ReactionState)
async def remove_reaction(
    thread_id: str,
    reaction_type: str,
    reactions: ReactionService = Depends(get_reaction_service),
):
    return await reactions.remove_reaction(thread_id, reaction_type)


@router.post("/{thread_id}/reactions/{reaction_type}/toggle", response_model=ReactionState)
async def toggle_reaction(
    thread_id: str,
    reaction_type: str,
    reactions: ReactionService = Depends(get_reaction_service),
):
    return await reactions.toggle_reaction(thread_id, reaction_type)
