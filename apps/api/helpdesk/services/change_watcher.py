"""Classify ticket mutations into notification events and hand them off.

Each mutation moves through ``Observed -> Classified -> Dispatched`` or
ends at ``Dropped``. A mutation yields at most one event: when an update
touches both ``status`` and ``assigned_to`` only the status change is
reported. That collapse is a known loss of precision, kept on purpose.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Protocol

from ..core.errors import DispatchError
from .mutation_feed import (
    INSERT,
    TICKET_COMMENTS,
    TICKETS,
    UPDATE,
    MutationFeed,
    RowMutation,
    Subscription,
)

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNMENT_CHANGED = "assignment_changed"
    COMMENT_ADDED = "comment_added"


class MutationState(str, Enum):
    OBSERVED = "observed"
    CLASSIFIED = "classified"
    DISPATCHED = "dispatched"
    DROPPED = "dropped"
    FAILED = "failed"


@dataclass(frozen=True)
class ChangeEvent:
    kind: EventKind
    ticket_id: str
    company_id: str | None
    actor_id: str | None
    payload: dict = field(default_factory=dict)


class EventDispatcher(Protocol):
    async def dispatch(self, event: ChangeEvent) -> object: ...


def _classify_ticket(mutation: RowMutation) -> ChangeEvent | None:
    before = mutation.before or {}
    after = mutation.after or {}
    row = after or before
    ticket_id = row.get("id")
    if not ticket_id:
        return None
    company_id = row.get("company_id")
    base = {
        "title": row.get("title"),
        "created_by": row.get("created_by"),
        "assigned_to": row.get("assigned_to"),
    }

    if mutation.event_type == INSERT:
        return ChangeEvent(
            kind=EventKind.CREATED,
            ticket_id=ticket_id,
            company_id=company_id,
            actor_id=mutation.actor_id or after.get("created_by"),
            payload=base,
        )

    if mutation.event_type != UPDATE:
        return None
    # Both row images are needed to tell which field changed.
    if not mutation.before or not mutation.after:
        return None

    if before.get("status") != after.get("status"):
        return ChangeEvent(
            kind=EventKind.STATUS_CHANGED,
            ticket_id=ticket_id,
            company_id=company_id,
            actor_id=mutation.actor_id,
            payload={**base, "old_status": before.get("status"), "new_status": after.get("status")},
        )

    if before.get("assigned_to") != after.get("assigned_to"):
        return ChangeEvent(
            kind=EventKind.ASSIGNMENT_CHANGED,
            ticket_id=ticket_id,
            company_id=company_id,
            actor_id=mutation.actor_id,
            payload={
                **base,
                "old_assigned_to": before.get("assigned_to"),
                "new_assigned_to": after.get("assigned_to"),
            },
        )

    return None


def _classify_comment(mutation: RowMutation) -> ChangeEvent | None:
    if mutation.event_type != INSERT or not mutation.after:
        return None
    row = mutation.after
    if not row.get("ticket_id"):
        return None
    return ChangeEvent(
        kind=EventKind.COMMENT_ADDED,
        ticket_id=row["ticket_id"],
        company_id=row.get("company_id"),
        actor_id=mutation.actor_id or row.get("author_id"),
        payload={
            "comment_id": row.get("id"),
            "author_id": row.get("author_id"),
            "is_private": bool(row.get("is_private")),
        },
    )


def classify(mutation: RowMutation) -> ChangeEvent | None:
    """Pure: at most one event per mutation, ``None`` means dropped."""
    if mutation.table == TICKETS:
        return _classify_ticket(mutation)
    if mutation.table == TICKET_COMMENTS:
        return _classify_comment(mutation)
    return None


_STOP = object()


class ChangeEventWatcher:
    """Owns a feed subscription and a channel to the dispatcher.

    The reader task only classifies; delivery happens on a separate task so
    a slow mail server never stalls the subscription.
    """

    def __init__(self, feed: MutationFeed, dispatcher: EventDispatcher, queue_size: int = 1000) -> None:
        self.feed = feed
        self.dispatcher = dispatcher
        self.stats: Counter[str] = Counter()
        self._channel: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._subscription: Subscription | None = None
        self._reader: asyncio.Task | None = None
        self._sender: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._reader is not None and not self._reader.done()

    async def start(self) -> None:
        if self.running:
            return
        self._subscription = await self.feed.subscribe()
        self._sender = asyncio.create_task(self._send_loop(), name="change-watcher-dispatch")
        self._reader = asyncio.create_task(self._read_loop(), name="change-watcher-read")
        logger.info("change watcher started")

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """Unsubscribe, then let already-classified events finish delivering."""
        if self._subscription is not None:
            await self._subscription.close()
        if self._reader is not None:
            try:
                await asyncio.wait_for(self._reader, timeout=drain_timeout)
            except asyncio.TimeoutError:
                self._reader.cancel()
        if self._sender is not None:
            await self._channel.put(_STOP)
            try:
                await asyncio.wait_for(self._sender, timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning("change watcher drain timed out, %s events left", self._channel.qsize())
                self._sender.cancel()
        self._subscription = self._reader = self._sender = None
        logger.info("change watcher stopped stats=%s", dict(self.stats))

    async def observe(self, mutation: RowMutation) -> MutationState:
        """Classify and enqueue for delivery."""
        self.stats[MutationState.OBSERVED.value] += 1
        event = classify(mutation)
        if event is None:
            self.stats[MutationState.DROPPED.value] += 1
            logger.debug("mutation dropped table=%s type=%s", mutation.table, mutation.event_type)
            return MutationState.DROPPED
        self.stats[MutationState.CLASSIFIED.value] += 1
        await self._channel.put(event)
        return MutationState.CLASSIFIED

    async def _deliver(self, event: ChangeEvent) -> MutationState:
        try:
            await self.dispatcher.dispatch(event)
        except DispatchError as exc:
            self.stats[MutationState.FAILED.value] += 1
            logger.error("notification dispatch failed kind=%s ticket_id=%s: %s", event.kind.value, event.ticket_id, exc)
            return MutationState.FAILED
        except Exception:
            self.stats[MutationState.FAILED.value] += 1
            logger.exception("notification dispatch crashed kind=%s ticket_id=%s", event.kind.value, event.ticket_id)
            return MutationState.FAILED
        self.stats[MutationState.DISPATCHED.value] += 1
        return MutationState.DISPATCHED

    async def _read_loop(self) -> None:
        assert self._subscription is not None
        async for mutation in self._subscription:
            try:
                await self.observe(mutation)
            except Exception:
                logger.exception("failed to classify mutation table=%s", mutation.table)

    async def _send_loop(self) -> None:
        while True:
            item = await self._channel.get()
            if item is _STOP:
                return
            await self._deliver(item)
