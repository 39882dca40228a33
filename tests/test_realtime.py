import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from threadspire.realtime import (
    DELETE,
    INSERT,
    UPDATE,
    ChangeEvent,
    ChangeFeed,
    RedisChangeRelay,
)
from threadspire.services.bookmarks import BookmarkService
from threadspire.services.collections import CollectionService
from threadspire.services.follows import FollowService
from threadspire.services.reactions import ReactionService
from threadspire.services.threads import ThreadService


class Recorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, *args):
        self.calls.append(args[0] if len(args) == 1 else args)


# ── ChangeFeed ─────────────────────────────────────────────────────────────

async def test_dispatch_filters_by_table_and_match():
    feed = ChangeFeed()
    seen = Recorder()
    feed.subscribe("threads", seen, match={"id": "t1"})

    await feed.publish(
        [
            ChangeEvent("threads", UPDATE, {"id": "t1"}),
            ChangeEvent("threads", UPDATE, {"id": "t2"}),
            ChangeEvent("reactions", INSERT, {"id": "t1"}),
        ]
    )
    assert [e.row["id"] for e in seen.calls] == ["t1"]


async def test_predicate_match():
    feed = ChangeFeed()
    seen = Recorder()
    feed.subscribe("follows", seen, match=lambda row: "u1" in row.values())
    await feed.dispatch(
        [
            ChangeEvent("follows", INSERT, {"follower_id": "u1", "following_id": "u2"}),
            ChangeEvent("follows", INSERT, {"follower_id": "u3", "following_id": "u1"}),
            ChangeEvent("follows", INSERT, {"follower_id": "u3", "following_id": "u4"}),
        ]
    )
    assert len(seen.calls) == 2


async def test_failing_subscriber_does_not_stop_others():
    feed = ChangeFeed()
    broken = AsyncMock(side_effect=RuntimeError("boom"))
    seen = Recorder()
    feed.subscribe("threads", broken)
    feed.subscribe("threads", seen)

    await feed.dispatch([ChangeEvent("threads", INSERT, {"id": "t1"})])
    broken.assert_awaited_once()
    assert len(seen.calls) == 1


async def test_unsubscribe_stops_delivery():
    feed = ChangeFeed()
    seen = Recorder()
    sub = feed.subscribe("threads", seen)
    assert feed.subscriber_count("threads") == 1
    sub.unsubscribe()
    sub.unsubscribe()
    assert feed.subscriber_count() == 0
    await feed.dispatch([ChangeEvent("threads", INSERT, {"id": "t1"})])
    assert seen.calls == []


async def test_events_are_published_only_after_commit(backend):
    seen = Recorder()
    backend.changes.subscribe("threads", seen)

    with pytest.raises(RuntimeError):
        async with backend.session() as db:
            ChangeFeed.stage(db, "threads", INSERT, {"id": "rolled-back"})
            raise RuntimeError("abort")
    assert seen.calls == []

    async with backend.session() as db:
        ChangeFeed.stage(db, "threads", INSERT, {"id": "committed"})
        assert seen.calls == []
    assert [e.row["id"] for e in seen.calls] == ["committed"]


async def test_relay_publishes_through_redis():
    pipe = MagicMock()
    pipe.execute = AsyncMock()
    redis = MagicMock()
    redis.pipeline.return_value = pipe

    relay = RedisChangeRelay(redis, "changes")
    feed = ChangeFeed(relay=relay)
    await feed.publish([ChangeEvent("threads", DELETE, {"id": "t1"})])

    channel, payload = pipe.publish.call_args.args
    assert channel == "changes"
    assert json.loads(payload) == {"table": "threads", "event": "DELETE", "row": {"id": "t1"}}
    pipe.execute.assert_awaited_once()


# ── Service subscriptions ──────────────────────────────────────────────────

async def test_subscribe_to_thread_refetches_and_reports_delete(backend, alice):
    async with backend.session() as db:
        thread = await ThreadService(db, alice, backend).create_thread("Live", ["v1"])

    seen = Recorder()
    sub = ThreadService(None, alice, backend).subscribe_to_thread(thread.id, seen)

    async with backend.session() as db:
        await ThreadService(db, alice, backend).update_thread(thread.id, title="Live v2")
    async with backend.session() as db:
        await ThreadService(db, alice, backend).delete_thread(thread.id)

    assert seen.calls[0].title == "Live v2"
    assert seen.calls[1] is None
    sub.unsubscribe()


async def test_subscribe_to_reactions_sends_fresh_counts(backend, alice, bob):
    async with backend.session() as db:
        thread = await ThreadService(db, alice, backend).create_thread("Reacted", ["x"])

    seen = Recorder()
    ReactionService(None, None, backend).subscribe_to_reactions(thread.id, seen)
    async with backend.session() as db:
        await ReactionService(db, bob, backend).add_reaction(thread.id, "fire")

    assert len(seen.calls) == 1
    counts = {c.type.name: c.count for c in seen.calls[0]}
    assert counts["FIRE"] == 1 and counts["BRAIN"] == 0


async def test_subscribe_to_bookmarks_only_sees_own(backend, alice, bob):
    async with backend.session() as db:
        thread = await ThreadService(db, alice, backend).create_thread("Saved", ["x"])

    seen = Recorder()
    BookmarkService(None, bob, backend).subscribe_to_bookmarks(seen)
    async with backend.session() as db:
        await BookmarkService(db, alice, backend).add_bookmark(thread.id)
    async with backend.session() as db:
        await BookmarkService(db, bob, backend).toggle_bookmark(thread.id)
    async with backend.session() as db:
        await BookmarkService(db, bob, backend).toggle_bookmark(thread.id)

    assert seen.calls == [(thread.id, True), (thread.id, False)]


async def test_subscribe_to_follows_sees_both_directions(backend, alice, bob, make_profile):
    carol = await make_profile(name="Carol")
    seen = Recorder()
    FollowService(None, None, backend).subscribe_to_follows(bob.id, seen)

    async with backend.session() as db:
        await FollowService(db, alice, backend).follow(bob.id)
    async with backend.session() as db:
        await FollowService(db, bob, backend).follow(carol.id)
    async with backend.session() as db:
        await FollowService(db, alice, backend).follow(carol.id)

    assert [(c.followers_count, c.following_count) for c in seen.calls] == [(1, 0), (1, 1)]


async def test_deleting_a_thread_notifies_bookmark_reaction_and_collection_subscribers(
    backend, alice, bob
):
    async with backend.session() as db:
        thread = await ThreadService(db, alice, backend).create_thread("Doomed", ["x"])
    async with backend.session() as db:
        await BookmarkService(db, bob, backend).add_bookmark(thread.id)
        await ReactionService(db, bob, backend).add_reaction(thread.id, "fire")
        shelf = await CollectionService(db, bob, backend).create_collection("Shelf")
        await CollectionService(db, bob, backend).add_thread_to_collection(shelf.id, thread.id)

    bookmarks, reactions, collections = Recorder(), Recorder(), Recorder()
    BookmarkService(None, bob, backend).subscribe_to_bookmarks(bookmarks)
    ReactionService(None, None, backend).subscribe_to_reactions(thread.id, reactions)
    CollectionService(None, bob, backend).subscribe_to_collections(collections)

    async with backend.session() as db:
        await ThreadService(db, alice, backend).delete_thread(thread.id)

    assert bookmarks.calls == [(thread.id, False)]
    assert [sum(c.count for c in counts) for counts in reactions.calls] == [0]
    assert len(collections.calls) == 1
    assert collections.calls[0][0].id == shelf.id
