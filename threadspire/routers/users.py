"""
Public profile and follow endpoints:
  GET    /api/users/{id}            — public profile
  GET    /api/users/{id}/follow     — does the caller follow this user?
  POST   /api/users/{id}/follow     — follow (idempotent)
  DELETE /api/users/{id}/follow     — unfollow
  GET    /api/users/{id}/followers  — who follows the user
  GET    /api/users/{id}/following  — whom the user follows
"""
import logging

from fastapi import APIRouter, Depends

from threadspire.dependencies import get_auth_service, get_follow_service
from threadspire.schemas import FollowState, PublicProfileResponse
from threadspire.services.auth import AuthService
from threadspire.services.follows import FollowService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{user_id}", response_model=PublicProfileResponse)
async def get_user(user_id: str, accounts: AuthService = Depends(get_auth_service)):
    return await accounts.get_public_profile(user_id)


@router.get("/{user_id}/follow", response_model=FollowState)
async def follow_state(user_id: str, follows: FollowService = Depends(get_follow_service)):
    return await follows.get_follow_state(user_id)


@router.post("/{user_id}/follow", response_model=FollowState)
async def follow_user(user_id: str, follows: FollowService = Depends(get_follow_service)):
    return await follows.follow(user_id)


@router.delete("/{user_id}/follow", response_model=FollowState)
async def unfollow_user(user_id: str, follows: FollowService = Depends(get_follow_service)):
    return await follows.unfollow(user_id)


@router.get("/{user_id}/followers", response_model=list[PublicProfileResponse])
async def list_followers(user_id: str, follows: FollowService = Depends(get_follow_service)):
    return await follows.get_followers(user_id)


@router.get("/{user_id}/following", response_model=list[PublicProfileResponse])
async def list_following(user_id: str, follows: FollowService = Depends(get_follow_service)):
    return await follows.get_following(user_id)
