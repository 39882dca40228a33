"""
Reaction service: emoji reactions on threads.

A user holds at most one reaction of each type per thread. Counts are always
reported for all five types, zero filled.
"""
import logging
from typing import Awaitable, Callable

from sqlalchemy import delete, select

from threadspire.errors import NotFoundError, ValidationError
from threadspire.models import InteractionType, Profile, Reaction, ReactionType
from threadspire.realtime import DELETE, INSERT, Subscription
from threadspire.schemas import ReactionCount, ReactionState, ReactionUser
from threadspire.services.analytics import AnalyticsService
from threadspire.services.base import Service
from threadspire.services.hydrate import reaction_counts_for

logger = logging.getLogger(__name__)

_VARIATION_SELECTOR = "\ufe0f"


def parse_reaction_type(value) -> ReactionType:
    """Accept an emoji (with or without variation selector) or a type name."""
    if isinstance(value, ReactionType):
        return value
    raw = str(value).strip()
    try:
        return ReactionType(raw.replace(_VARIATION_SELECTOR, ""))
    except ValueError:
        pass
    try:
        return ReactionType[raw.upper()]
    except KeyError:
        raise ValidationError(f"Unknown reaction type '{raw}'") from None


class ReactionService(Service):

    async def _find(self, thread_id: str, user_id: str, rtype: ReactionType):
        return await self.db.scalar(
            select(Reaction).where(
                Reaction.thread_id == thread_id,
                Reaction.user_id == user_id,
                Reaction.type == rtype.value,
            )
        )

    async def add_reaction(self, thread_id: str, reaction_type) -> ReactionState:
        user = self.require_viewer()
        rtype = parse_reaction_type(reaction_type)
        await self.get_visible_thread(thread_id)
        if await self._find(thread_id, user.id, rtype) is None:
            self.db.add(Reaction(thread_id=thread_id, user_id=user.id, type=rtype.value))
            await AnalyticsService(self.db, self.viewer, self.backend).log_interaction(
                thread_id, InteractionType.REACTION
            )
            await self.db.flush()
            self.stage(
                "reactions", INSERT, thread_id=thread_id, user_id=user.id, type=rtype.value
            )
            logger.info("User %s reacted %s on thread %s", user.id, rtype.name, thread_id)
        return ReactionState(thread_id=thread_id, type=rtype, active=True)

    async def remove_reaction(self, thread_id: str, reaction_type) -> ReactionState:
        user = self.require_viewer()
        rtype = parse_reaction_type(reaction_type)
        result = await self.db.execute(
            delete(Reaction).where(
                Reaction.thread_id == thread_id,
                Reaction.user_id == user.id,
                Reaction.type == rtype.value,
            )
        )
        if result.rowcount:
            self.stage(
                "reactions", DELETE, thread_id=thread_id, user_id=user.id, type=rtype.value
            )
        return ReactionState(thread_id=thread_id, type=rtype, active=False)

    async def toggle_reaction(self, thread_id: str, reaction_type) -> ReactionState:
        user = self.require_viewer()
        rtype = parse_reaction_type(reaction_type)
        if await self._find(thread_id, user.id, rtype) is not None:
            return await self.remove_reaction(thread_id, rtype)
        return await self.add_reaction(thread_id, rtype)

    async def get_user_reactions(self, thread_id: str) -> list[ReactionType]:
        """Reaction types the viewer has placed on the thread; empty when anonymous."""
        if self.viewer is None:
            return []
        rows = await self.db.execute(
            select(Reaction.type)
            .where(Reaction.thread_id == thread_id, Reaction.user_id == self.viewer.id)
            .order_by(Reaction.created_at)
        )
        return [ReactionType(t) for t in rows.scalars().all()]

    async def get_reaction_counts(self, thread_id: str) -> list[ReactionCount]:
        await self.get_visible_thread(thread_id)
        counts = (await reaction_counts_for(self.db, [thread_id]))[thread_id]
        return [ReactionCount(type=r, count=counts[r.value]) for r in ReactionType]

    async def get_reaction_users(self, thread_id: str) -> list[ReactionUser]:
        await self.get_visible_thread(thread_id)
        rows = await self.db.execute(
            select(Reaction, Profile)
            .join(Profile, Profile.id == Reaction.user_id)
            .where(Reaction.thread_id == thread_id)
            .order_by(Reaction.created_at.desc(), Reaction.id)
        )
        return [
            ReactionUser(
                user_id=reaction.user_id,
                type=ReactionType(reaction.type),
                user_name=profile.name or "Anonymous",
                user_avatar=profile.avatar_url,
                created_at=reaction.created_at,
            )
            for reaction, profile in rows.all()
        ]

    def subscribe_to_reactions(
        self,
        thread_id: str,
        callback: Callable[[list[ReactionCount]], Awaitable[None]],
    ) -> Subscription:
        """Call ``callback`` with fresh counts after every reaction change on the thread."""
        viewer, backend = self.viewer, self.backend

        async def _on_change(event) -> None:
            async with backend.session() as db:
                try:
                    counts = await ReactionService(db, viewer, backend).get_reaction_counts(
                        thread_id
                    )
                except NotFoundError:
                    # thread deleted along with its reactions
                    counts = [ReactionCount(type=r, count=0) for r in ReactionType]
            await callback(counts)

        return backend.changes.subscribe("reactions", _on_change, match={"thread_id": thread_id})
