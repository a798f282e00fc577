from __future__ import annotations

from collections.abc import Iterable

from ..core.clock import as_utc
from ..models.comment import TicketComment
from ..models.history import TicketHistory
from ..schemas.timeline import CommentEntry, HistoryEntry, TimelineEntry


def history_entry(h: TicketHistory) -> HistoryEntry:
    return HistoryEntry(
        id=h.id,
        seq=h.seq,
        ticket_id=h.ticket_id,
        actor_id=h.actor_id,
        action=h.action,
        description=h.description,
        old_value=h.old_value,
        new_value=h.new_value,
        created_at=as_utc(h.created_at),
    )


def comment_entry(c: TicketComment) -> CommentEntry:
    return CommentEntry(
        id=c.id,
        ticket_id=c.ticket_id,
        author_id=c.author_id,
        body=c.body,
        is_private=c.is_private,
        created_at=as_utc(c.created_at),
    )


def _sort_key(entry: TimelineEntry) -> tuple:
    # History written in one commit shares a timestamp; seq keeps its insertion order.
    seq = entry.seq if entry.kind == "history" else 0
    return (as_utc(entry.created_at), seq, entry.id, entry.kind)


def merge(
    history: Iterable[TicketHistory | HistoryEntry],
    comments: Iterable[TicketComment | CommentEntry],
) -> list[TimelineEntry]:
    """Most recent first; equal timestamps fall back to history seq, then id, then kind."""
    entries: list[TimelineEntry] = []
    for h in history:
        entries.append(h if isinstance(h, HistoryEntry) else history_entry(h))
    for c in comments:
        entries.append(c if isinstance(c, CommentEntry) else comment_entry(c))
    return sorted(entries, key=_sort_key, reverse=True)
