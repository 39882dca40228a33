"""
Row-change feed used for realtime subscriptions.

Services stage a ``ChangeEvent`` on their session whenever they write a row;
``Backend.session`` publishes the staged events once the transaction has
committed, so subscribers always re-read committed state.

  ChangeFeed        — in-process registry of subscriptions, keyed by table
  RedisChangeRelay  — optional fan-out of events through Redis pub/sub so
                      subscribers in every API process are notified

Subscribers are async callbacks. They run one after another; an exception in
one callback is logged and does not reach the writer or other subscribers.
"""
import asyncio
import json
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    row: dict = field(default_factory=dict)


Callback = Callable[[ChangeEvent], Awaitable[None]]
# equality filter on row fields, or a predicate over the row
Match = Union[dict[str, Any], Callable[[dict], bool], None]


class Subscription:
    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        callback: Callback,
        match: Match = None,
    ):
        self._feed = feed
        self.table = table
        self.callback = callback
        self.match = match or {}
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if callable(self.match):
            return bool(self.match(event.row))
        return all(event.row.get(k) == v for k, v in self.match.items())

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self)
            self.active = False


class ChangeFeed:
    PENDING_KEY = "threadspire.pending_changes"

    def __init__(self, relay: Optional["RedisChangeRelay"] = None):
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self.relay = relay

    # ─────────────────────── Subscribe side ───────────────────────────────

    def subscribe(
        self,
        table: str,
        callback: Callback,
        match: Match = None,
    ) -> Subscription:
        sub = Subscription(self, table, callback, match)
        self._subscriptions[table].append(sub)
        logger.debug("Subscribed to %s %s", table, sub.match)
        return sub

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.table, [])
        if sub in subs:
            subs.remove(sub)

    def subscriber_count(self, table: Optional[str] = None) -> int:
        if table is not None:
            return len(self._subscriptions.get(table, []))
        return sum(len(s) for s in self._subscriptions.values())

    # ─────────────────────── Publish side ─────────────────────────────────

    @classmethod
    def stage(cls, session, table: str, event: str, row: dict) -> None:
        """Queue an event on a session; it is published after commit."""
        session.info.setdefault(cls.PENDING_KEY, []).append(
            ChangeEvent(table=table, event=event, row=row)
        )

    async def publish(self, events: list[ChangeEvent]) -> None:
        if not events:
            return
        if self.relay is not None:
            await self.relay.publish(events)
        else:
            await self.dispatch(events)

    async def dispatch(self, events: list[ChangeEvent]) -> None:
        for event in events:
            # copy: callbacks may unsubscribe while we iterate
            for sub in list(self._subscriptions.get(event.table, [])):
                if not sub.active or not sub.matches(event):
                    continue
                try:
                    await sub.callback(event)
                except Exception as exc:
                    logger.error(
                        "Subscriber error for %s %s: %s", event.table, event.event, exc
                    )


class RedisChangeRelay:
    """Publishes change events to a Redis channel and dispatches what it hears."""

    def __init__(self, redis: aioredis.Redis, channel: str):
        self._redis = redis
        self.channel = channel
        self._task: Optional[asyncio.Task] = None

    async def publish(self, events: list[ChangeEvent]) -> None:
        pipe = self._redis.pipeline()
        for event in events:
            pipe.publish(self.channel, json.dumps(asdict(event), default=str))
        await pipe.execute()

    def start(self, feed: ChangeFeed) -> None:
        self._task = asyncio.create_task(self._listen(feed))

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _listen(self, feed: ChangeFeed) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self.channel)
        logger.info("Realtime relay listening on Redis channel '%s'", self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    payload = json.loads(message["data"])
                    await feed.dispatch([ChangeEvent(**payload)])
                except Exception as exc:
                    logger.error("Relay error for %s: %s", message.get("data"), exc)
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
