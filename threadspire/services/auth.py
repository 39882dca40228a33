"""
Account service: sign-up, sign-in, password reset and profile management.

Sign-up and password-reset requests are rate limited per email, reset
confirmations per user (fixed window, see ``RateLimiter``).
"""
import logging
from typing import Optional

from opentelemetry import trace
from sqlalchemy import func, select

from threadspire.clients.mailer import Mailer
from threadspire.clients.redis_client import RateLimiter
from threadspire.database import Backend
from threadspire.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ThreadSpireError,
    ValidationError,
)
from threadspire.models import Profile, utcnow
from threadspire.realtime import INSERT, UPDATE
from threadspire.schemas import ProfileResponse, PublicProfileResponse, TokenResponse
from threadspire.security import (
    RESET,
    create_token,
    decode_claims,
    hash_password,
    password_fingerprint,
    verify_password,
)
from threadspire.services.base import Service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService(Service):
    def __init__(
        self,
        db,
        viewer: Optional[Profile],
        backend: Backend,
        rate_limiter: Optional[RateLimiter] = None,
        mailer: Optional[Mailer] = None,
    ):
        super().__init__(db, viewer, backend)
        self.rate_limiter = rate_limiter
        self.mailer = mailer

    async def _limit(self, action: str, subject: str) -> None:
        if self.rate_limiter is not None:
            await self.rate_limiter.check(action, subject)

    def _check_password(self, password: str) -> None:
        if len(password or "") < self.settings.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.settings.password_min_length} characters"
            )

    async def _current_profile(self) -> Profile:
        # the viewer may come from another session
        profile = await self.db.get(Profile, self.require_viewer().id)
        if profile is None:
            raise AuthenticationError()
        return profile

    async def _by_email(self, email: str) -> Optional[Profile]:
        return await self.db.scalar(select(Profile).where(func.lower(Profile.email) == email))

    # ─────────────────────── Accounts ─────────────────────────────────────

    async def signup(self, name: str, email: str, password: str) -> TokenResponse:
        with tracer.start_as_current_span("signup"):
            email = normalize_email(email)
            await self._limit("signup", email)
            self._check_password(password)
            if await self._by_email(email) is not None:
                raise ConflictError("An account with this email already exists")

            profile = Profile(
                email=email,
                name=(name or "").strip() or None,
                password_hash=hash_password(password),
            )
            self.db.add(profile)
            await self.db.flush()
            self.stage("profiles", INSERT, id=profile.id)
            logger.info("Profile created: %s", profile.id)
            return TokenResponse(
                access_token=create_token(self.settings, profile.id), user_id=profile.id
            )

    async def sign_in(self, email: str, password: str) -> TokenResponse:
        profile = await self._by_email(normalize_email(email))
        if profile is None or not verify_password(profile.password_hash, password or ""):
            raise AuthenticationError("Invalid email or password")
        logger.info("User signed in: %s", profile.id)
        return TokenResponse(access_token=create_token(self.settings, profile.id), user_id=profile.id)

    async def request_password_reset(self, email: str) -> None:
        """Mail a reset link. Unknown addresses get the same answer and no mail."""
        with tracer.start_as_current_span("request_password_reset"):
            email = normalize_email(email)
            await self._limit("password-reset", email)
            profile = await self._by_email(email)
            if profile is None:
                logger.info("Password reset requested for unknown email")
                return
            token = create_token(
                self.settings,
                profile.id,
                purpose=RESET,
                fingerprint=password_fingerprint(profile.password_hash),
            )
            if self.mailer is None:
                raise ThreadSpireError("Failed to send reset email")
            try:
                await self.mailer.send_password_reset(profile.email, token)
            except Exception as exc:
                logger.error("Reset email to %s failed: %s", profile.id, exc)
                raise ThreadSpireError("Failed to send reset email") from exc

    async def reset_password(self, token: str, password: str) -> None:
        claims = decode_claims(self.settings, token, purpose=RESET)
        user_id = claims["sub"]
        await self._limit("password-update", user_id)
        self._check_password(password)
        profile = await self.db.get(Profile, user_id)
        # a used token no longer matches the new hash
        if profile is None or claims.get("pwd") != password_fingerprint(profile.password_hash):
            raise AuthenticationError("Invalid or expired token")
        self._set_password(profile, password)
        await self.db.flush()
        logger.info("Password reset for user %s", user_id)

    async def change_password(self, current_password: str, new_password: str) -> None:
        user = await self._current_profile()
        if not verify_password(user.password_hash, current_password or ""):
            raise AuthenticationError("Current password is incorrect")
        self._check_password(new_password)
        self._set_password(user, new_password)
        await self.db.flush()
        logger.info("Password changed for user %s", user.id)

    @staticmethod
    def _set_password(profile: Profile, password: str) -> None:
        profile.password_hash = hash_password(password)
        profile.updated_at = utcnow()

    # ─────────────────────── Profiles ─────────────────────────────────────

    async def get_profile(self) -> ProfileResponse:
        user = await self._current_profile()
        return ProfileResponse.model_validate(user)

    async def update_profile(
        self,
        name: Optional[str] = None,
        bio: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> ProfileResponse:
        user = await self._current_profile()
        if name is not None:
            user.name = name.strip() or None
        if bio is not None:
            user.bio = bio
        if avatar_url is not None:
            user.avatar_url = avatar_url or None
        user.updated_at = utcnow()
        await self.db.flush()
        self.stage("profiles", UPDATE, id=user.id)
        return ProfileResponse.model_validate(user)

    async def get_public_profile(self, user_id: str) -> PublicProfileResponse:
        profile = await self.db.get(Profile, user_id)
        if profile is None:
            raise NotFoundError("User")
        await self.db.refresh(profile)
        return PublicProfileResponse.model_validate(profile)
