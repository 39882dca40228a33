"""Bookmarks, reactions and follows."""
import pytest
from sqlalchemy import func, select

from threadspire.errors import AuthenticationError, NotFoundError, ValidationError
from threadspire.models import Bookmark, InteractionLog, Profile, Reaction, ReactionType
from threadspire.services.bookmarks import BookmarkService
from threadspire.services.follows import FollowService
from threadspire.services.reactions import ReactionService, parse_reaction_type
from threadspire.services.threads import ThreadService


@pytest.fixture
async def thread(backend, alice):
    async with backend.session() as db:
        return await ThreadService(db, alice, backend).create_thread("Engaging", ["hello"])


# ── Bookmarks ──────────────────────────────────────────────────────────────

async def test_toggle_bookmark_twice_restores_state(backend, bob, thread):
    async with backend.session() as db:
        assert await BookmarkService(db, bob, backend).is_bookmarked(thread.id) is False
    async with backend.session() as db:
        first = await BookmarkService(db, bob, backend).toggle_bookmark(thread.id)
    async with backend.session() as db:
        second = await BookmarkService(db, bob, backend).toggle_bookmark(thread.id)
    assert first.is_bookmarked is True
    assert second.is_bookmarked is False
    async with backend.session() as db:
        assert await BookmarkService(db, bob, backend).is_bookmarked(thread.id) is False


async def test_bookmark_twice_is_a_noop(backend, bob, thread):
    for _ in range(2):
        async with backend.session() as db:
            await BookmarkService(db, bob, backend).add_bookmark(thread.id)
    async with backend.session() as db:
        count = await db.scalar(select(func.count()).select_from(Bookmark))
        logged = await db.scalar(
            select(func.count()).where(InteractionLog.interaction_type == "bookmark")
        )
    assert count == 1
    assert logged == 1


async def test_bookmarked_threads_newest_first(backend, alice, bob):
    ids = []
    for title in ["one", "two"]:
        async with backend.session() as db:
            ids.append((await ThreadService(db, alice, backend).create_thread(title, ["x"])).id)
    for thread_id in ids:
        async with backend.session() as db:
            await BookmarkService(db, bob, backend).add_bookmark(thread_id)
    async with backend.session() as db:
        page = await BookmarkService(db, bob, backend).get_bookmarked_threads()
    assert page.total == 2
    assert {t.id for t in page.threads} == set(ids)


async def test_anonymous_is_never_bookmarked(backend, thread):
    async with backend.session() as db:
        svc = BookmarkService(db, None, backend)
        assert await svc.is_bookmarked(thread.id) is False
        with pytest.raises(AuthenticationError):
            await svc.add_bookmark(thread.id)


# ── Reactions ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("🔥", ReactionType.FIRE),
        ("fire", ReactionType.FIRE),
        ("BRAIN", ReactionType.BRAIN),
        ("⚠️", ReactionType.WARNING),
        (ReactionType.EYES, ReactionType.EYES),
    ],
)
def test_parse_reaction_type(raw, expected):
    assert parse_reaction_type(raw) is expected


def test_parse_reaction_type_rejects_unknown():
    with pytest.raises(ValidationError):
        parse_reaction_type("💩")


async def test_reaction_counts_are_zero_filled(backend, alice, bob, thread):
    async with backend.session() as db:
        await ReactionService(db, alice, backend).add_reaction(thread.id, "🔥")
    async with backend.session() as db:
        await ReactionService(db, bob, backend).add_reaction(thread.id, "🔥")
        await ReactionService(db, bob, backend).add_reaction(thread.id, "👏")
    async with backend.session() as db:
        counts = await ReactionService(db, None, backend).get_reaction_counts(thread.id)
    as_dict = {c.type: c.count for c in counts}
    assert len(counts) == 5
    assert as_dict[ReactionType.FIRE] == 2
    assert as_dict[ReactionType.CLAP] == 1
    assert as_dict[ReactionType.BRAIN] == 0


async def test_add_reaction_twice_is_a_noop(backend, bob, thread):
    for _ in range(2):
        async with backend.session() as db:
            await ReactionService(db, bob, backend).add_reaction(thread.id, "brain")
    async with backend.session() as db:
        assert await db.scalar(select(func.count()).select_from(Reaction)) == 1
        mine = await ReactionService(db, bob, backend).get_user_reactions(thread.id)
    assert mine == [ReactionType.BRAIN]


async def test_toggle_and_remove_reaction(backend, bob, thread):
    async with backend.session() as db:
        on = await ReactionService(db, bob, backend).toggle_reaction(thread.id, "eyes")
    async with backend.session() as db:
        off = await ReactionService(db, bob, backend).toggle_reaction(thread.id, "eyes")
    assert (on.active, off.active) == (True, False)
    async with backend.session() as db:
        gone = await ReactionService(db, bob, backend).remove_reaction(thread.id, "eyes")
    assert gone.active is False


async def test_reaction_users_carry_profile_info(backend, alice, thread):
    async with backend.session() as db:
        await ReactionService(db, alice, backend).add_reaction(thread.id, "clap")
    async with backend.session() as db:
        users = await ReactionService(db, None, backend).get_reaction_users(thread.id)
    assert len(users) == 1
    assert users[0].user_id == alice.id
    assert users[0].user_name == "Alice"
    assert users[0].user_avatar == "https://img.test/alice.png"
    assert users[0].type is ReactionType.CLAP


async def test_thread_response_includes_reaction_counts(backend, bob, thread):
    async with backend.session() as db:
        await ReactionService(db, bob, backend).add_reaction(thread.id, "warning")
    async with backend.session() as db:
        loaded = await ThreadService(db, None, backend).get_thread_by_id(thread.id)
    assert loaded.reaction_counts[ReactionType.WARNING.value] == 1


# ── Follows ────────────────────────────────────────────────────────────────

async def test_follow_updates_both_counters(backend, alice, bob):
    async with backend.session() as db:
        state = await FollowService(db, alice, backend).follow(bob.id)
    assert state.is_following is True
    assert state.followers_count == 1

    async with backend.session() as db:
        a = await db.get(Profile, alice.id)
        b = await db.get(Profile, bob.id)
        assert (a.following_count, a.followers_count) == (1, 0)
        assert (b.following_count, b.followers_count) == (0, 1)
        followers = await FollowService(db, None, backend).get_followers(bob.id)
        following = await FollowService(db, None, backend).get_following(alice.id)
    assert [p.id for p in followers] == [alice.id]
    assert [p.id for p in following] == [bob.id]


async def test_follow_twice_then_unfollow(backend, alice, bob):
    for _ in range(2):
        async with backend.session() as db:
            await FollowService(db, alice, backend).follow(bob.id)
    async with backend.session() as db:
        counts = await FollowService(db, None, backend).get_counts(bob.id)
    assert counts.followers_count == 1

    async with backend.session() as db:
        state = await FollowService(db, alice, backend).unfollow(bob.id)
    assert state.is_following is False
    assert state.followers_count == 0


async def test_cannot_follow_self_or_missing_user(backend, alice):
    async with backend.session() as db:
        svc = FollowService(db, alice, backend)
        with pytest.raises(ValidationError):
            await svc.follow(alice.id)
        with pytest.raises(NotFoundError):
            await svc.follow("missing")
