"""
Follow service: the social graph between profiles.

``profiles.followers_count`` / ``following_count`` are denormalised; every
follow or unfollow recomputes both from ``follows`` so they cannot drift.
"""
import logging
from typing import Awaitable, Callable

from opentelemetry import trace
from sqlalchemy import delete, func, select, update

from threadspire.errors import NotFoundError, ValidationError
from threadspire.models import Follow, Profile
from threadspire.realtime import DELETE, INSERT, Subscription
from threadspire.schemas import FollowCounts, FollowState, PublicProfileResponse
from threadspire.services.base import Service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FollowService(Service):

    async def _require_profile(self, user_id: str) -> Profile:
        profile = await self.db.get(Profile, user_id)
        if profile is None:
            raise NotFoundError("User")
        return profile

    async def is_following(self, target_id: str) -> bool:
        if self.viewer is None:
            return False
        found = await self.db.get(Follow, (self.viewer.id, target_id))
        return found is not None

    async def follow(self, target_id: str) -> FollowState:
        with tracer.start_as_current_span("follow") as span:
            user = self.require_viewer()
            span.set_attribute("follow.target", target_id)
            if target_id == user.id:
                raise ValidationError("You cannot follow yourself")
            await self._require_profile(target_id)

            if not await self.is_following(target_id):
                self.db.add(Follow(follower_id=user.id, following_id=target_id))
                await self.db.flush()
                await self.update_counts(user.id, target_id)
                self.stage("follows", INSERT, follower_id=user.id, following_id=target_id)
                logger.info("User %s followed %s", user.id, target_id)
            return await self.get_follow_state(target_id)

    async def unfollow(self, target_id: str) -> FollowState:
        with tracer.start_as_current_span("unfollow"):
            user = self.require_viewer()
            await self._require_profile(target_id)
            result = await self.db.execute(
                delete(Follow).where(
                    Follow.follower_id == user.id, Follow.following_id == target_id
                )
            )
            if result.rowcount:
                await self.update_counts(user.id, target_id)
                self.stage("follows", DELETE, follower_id=user.id, following_id=target_id)
                logger.info("User %s unfollowed %s", user.id, target_id)
            return await self.get_follow_state(target_id)

    async def update_counts(self, *user_ids: str) -> None:
        """Recompute follower / following counters of the given profiles."""
        for user_id in user_ids:
            followers = select(func.count()).where(Follow.following_id == user_id)
            following = select(func.count()).where(Follow.follower_id == user_id)
            await self.db.execute(
                update(Profile)
                .where(Profile.id == user_id)
                .values(
                    followers_count=followers.scalar_subquery(),
                    following_count=following.scalar_subquery(),
                )
                .execution_options(synchronize_session=False)
            )
        await self.db.flush()

    async def get_counts(self, user_id: str) -> FollowCounts:
        profile = await self._require_profile(user_id)
        await self.db.refresh(profile)
        return FollowCounts(
            user_id=user_id,
            followers_count=profile.followers_count,
            following_count=profile.following_count,
        )

    async def get_follow_state(self, target_id: str) -> FollowState:
        counts = await self.get_counts(target_id)
        return FollowState(
            user_id=target_id,
            is_following=await self.is_following(target_id),
            followers_count=counts.followers_count,
            following_count=counts.following_count,
        )

    async def get_followers(self, user_id: str) -> list[PublicProfileResponse]:
        await self._require_profile(user_id)
        rows = await self.db.execute(
            select(Profile)
            .join(Follow, Follow.follower_id == Profile.id)
            .where(Follow.following_id == user_id)
            .order_by(Follow.created_at.desc(), Profile.id)
        )
        return [PublicProfileResponse.model_validate(p) for p in rows.scalars().all()]

    async def get_following(self, user_id: str) -> list[PublicProfileResponse]:
        await self._require_profile(user_id)
        rows = await self.db.execute(
            select(Profile)
            .join(Follow, Follow.following_id == Profile.id)
            .where(Follow.follower_id == user_id)
            .order_by(Follow.created_at.desc(), Profile.id)
        )
        return [PublicProfileResponse.model_validate(p) for p in rows.scalars().all()]

    def subscribe_to_follows(
        self,
        user_id: str,
        callback: Callable[[FollowCounts], Awaitable[None]],
    ) -> Subscription:
        """Call ``callback`` with fresh counts whenever someone follows / unfollows
        the user, or the user follows / unfollows someone."""
        viewer, backend = self.viewer, self.backend

        async def _on_change(event) -> None:
            async with backend.session() as db:
                counts = await FollowService(db, viewer, backend).get_counts(user_id)
            await callback(counts)

        return backend.changes.subscribe(
            "follows",
            _on_change,
            match=lambda row: user_id in (row.get("follower_id"), row.get("following_id")),
        )
