"""Live feed of ticket-row mutations.

Two implementations share one interface: ``publish`` is called by the
mutation path after a commit, ``subscribe`` hands a watcher an async
iterator of ``RowMutation``.

No delivery guarantee is made. Postgres NOTIFY is fire-and-forget: anything
published while a subscriber is disconnected is lost, not replayed after
reconnect. Every process that subscribes receives its own copy, so running
several watchers against one channel sends each notification once per
watcher.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
import json
import logging
from typing import AsyncIterator, Callable, Protocol

import asyncpg

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
EVENT_TYPES = (INSERT, UPDATE, DELETE)

TICKETS = "tickets"
TICKET_COMMENTS = "ticket_comments"


@dataclass(frozen=True)
class RowMutation:
    table: str
    event_type: str
    before: dict | None = None
    after: dict | None = None
    actor_id: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "RowMutation":
        data = json.loads(raw)
        event_type = str(data.get("event_type", "")).upper()
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event_type: {event_type!r}")
        return cls(
            table=data["table"],
            event_type=event_type,
            before=data.get("before"),
            after=data.get("after"),
            actor_id=data.get("actor_id"),
        )


class Subscription(Protocol):
    def __aiter__(self) -> AsyncIterator[RowMutation]: ...

    async def close(self) -> None: ...


class MutationFeed(Protocol):
    async def publish(self, mutation: RowMutation) -> None: ...

    async def subscribe(self) -> Subscription: ...

    async def close(self) -> None: ...


_CLOSED = object()


@dataclass(eq=False)
class QueueSubscription:
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    on_close: Callable[["QueueSubscription"], None] | None = None
    closed: bool = False

    def __aiter__(self) -> AsyncIterator[RowMutation]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RowMutation]:
        while True:
            item = await self.queue.get()
            if item is _CLOSED:
                return
            yield item

    def offer(self, mutation: RowMutation) -> None:
        if not self.closed:
            self.queue.put_nowait(mutation)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.queue.put_nowait(_CLOSED)
        if self.on_close is not None:
            self.on_close(self)


class InMemoryMutationFeed:
    """In-process fan-out; every subscriber gets every mutation."""

    def __init__(self) -> None:
        self._subscribers: list[QueueSubscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, mutation: RowMutation) -> None:
        for sub in list(self._subscribers):
            sub.offer(mutation)

    async def subscribe(self) -> QueueSubscription:
        sub = QueueSubscription(on_close=self._subscribers.remove)
        self._subscribers.append(sub)
        return sub

    async def close(self) -> None:
        for sub in list(self._subscribers):
            await sub.close()


def asyncpg_dsn(database_url: str) -> str:
    # SQLAlchemy URL -> plain libpq DSN for asyncpg.
    for prefix in ("postgresql+asyncpg://", "postgres+asyncpg://"):
        if database_url.startswith(prefix):
            return "postgresql://" + database_url[len(prefix):]
    return database_url


class PostgresMutationFeed:
    """LISTEN/NOTIFY feed shared by every API process on the same database."""

    def __init__(self, dsn: str, channel: str, reconnect_seconds: float = 5.0, pool_size: int = 2) -> None:
        self.dsn = asyncpg_dsn(dsn)
        self.channel = channel
        self.reconnect_seconds = reconnect_seconds
        self.pool_size = pool_size
        self._pool = None
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self):
        async with self._pool_lock:
            if self._pool is None:
                self._pool = await asyncpg.create_pool(self.dsn, min_size=1, max_size=self.pool_size)
            return self._pool

    async def publish(self, mutation: RowMutation) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT pg_notify($1, $2)", self.channel, mutation.to_json())

    async def subscribe(self) -> "PostgresSubscription":
        sub = PostgresSubscription(self)
        await sub.start()
        return sub

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()


class PostgresSubscription:
    def __init__(self, feed: PostgresMutationFeed) -> None:
        self.feed = feed
        self.inner = QueueSubscription()
        self._conn = None
        self._lost = asyncio.Event()
        self._supervisor: asyncio.Task | None = None

    def __aiter__(self) -> AsyncIterator[RowMutation]:
        return self.inner.__aiter__()

    async def start(self) -> None:
        await self._connect()
        self._supervisor = asyncio.create_task(self._supervise(), name="mutation-feed-supervisor")

    def _on_notify(self, connection, pid, channel, payload) -> None:
        try:
            mutation = RowMutation.from_json(payload)
        except (ValueError, KeyError, TypeError):
            logger.exception("malformed mutation payload on channel=%s", channel)
            return
        self.inner.offer(mutation)

    def _on_terminate(self, connection) -> None:
        logger.warning("mutation feed connection lost channel=%s", self.feed.channel)
        self._lost.set()

    async def _connect(self) -> None:
        conn = await asyncpg.connect(self.feed.dsn)
        conn.add_termination_listener(self._on_terminate)
        await conn.add_listener(self.feed.channel, self._on_notify)
        self._conn = conn
        self._lost.clear()
        logger.info("mutation feed listening channel=%s", self.feed.channel)

    async def _supervise(self) -> None:
        while not self.inner.closed:
            await self._lost.wait()
            if self.inner.closed:
                return
            await self._release()
            while not self.inner.closed:
                await asyncio.sleep(self.feed.reconnect_seconds)
                try:
                    await self._connect()
                    break
                except (OSError, ConnectionError) as exc:
                    logger.warning("mutation feed reconnect failed: %s", exc)
                except Exception:
                    logger.exception("mutation feed reconnect failed")

    async def _release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            if not conn.is_closed():
                await conn.remove_listener(self.feed.channel, self._on_notify)
            await conn.close()
        except Exception:
            logger.exception("failed to release mutation feed connection")

    async def close(self) -> None:
        await self.inner.close()
        if self._supervisor is not None:
            self._supervisor.cancel()
            try:
                await self._supervisor
            except asyncio.CancelledError:
                pass
        await self._release()


def build_mutation_feed(kind: str, database_url: str, channel: str, reconnect_seconds: float = 5.0) -> MutationFeed:
    if kind == "postgres":
        return PostgresMutationFeed(database_url, channel, reconnect_seconds)
    return InMemoryMutationFeed()
