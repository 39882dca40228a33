"""
Account endpoints:
  POST /api/auth/signup          — create an account, returns a bearer token
  POST /api/auth/login           — exchange email + password for a token
  POST /api/auth/reset-password  — mail a password-reset link
  PUT  /api/auth/reset-password  — set a new password with the mailed token
  PUT  /api/user/password        — change password (current password required)
  GET  /api/user/profile         — the caller's own profile
  PUT  /api/user/profile         — update name / bio / avatar
"""
import logging

from fastapi import APIRouter, Depends, status

from threadspire.dependencies import get_auth_service, get_current_user
from threadspire.schemas import (
    LoginRequest,
    MessageResponse,
    PasswordChange,
    PasswordResetConfirm,
    PasswordResetRequest,
    ProfileResponse,
    ProfileUpdate,
    SignupRequest,
    TokenResponse,
)
from threadspire.services.auth import AuthService

logger = logging.getLogger(__name__)
router = APIRouter()
user_router = APIRouter(dependencies=[Depends(get_current_user)])


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, accounts: AuthService = Depends(get_auth_service)):
    return await accounts.signup(body.name, body.email, body.password)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, accounts: AuthService = Depends(get_auth_service)):
    return await accounts.sign_in(body.email, body.password)


@router.post("/reset-password", response_model=MessageResponse)
async def request_password_reset(
    body: PasswordResetRequest, accounts: AuthService = Depends(get_auth_service)
):
    await accounts.request_password_reset(body.email)
    return MessageResponse(message="If that email is registered, a reset link is on its way")


@router.put("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: PasswordResetConfirm, accounts: AuthService = Depends(get_auth_service)
):
    await accounts.reset_password(body.token, body.password)
    return MessageResponse(message="Password updated")


# ── /api/user ──────────────────────────────────────────────────────────────

@user_router.put("/password", response_model=MessageResponse)
async def change_password(body: PasswordChange, accounts: AuthService = Depends(get_auth_service)):
    await accounts.change_password(body.current_password, body.new_password)
    return MessageResponse(message="Password updated")


@user_router.get("/profile", response_model=ProfileResponse)
async def get_profile(accounts: AuthService = Depends(get_auth_service)):
    return await accounts.get_profile()


@user_router.put("/profile", response_model=ProfileResponse)
async def update_profile(body: ProfileUpdate, accounts: AuthService = Depends(get_auth_service)):
    return await accounts.update_profile(body.name, body.bio, body.avatar_url)
