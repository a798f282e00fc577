import logging

from fastapi import Request

from ..services.mutation_feed import MutationFeed, RowMutation

logger = logging.getLogger(__name__)


def get_mutation_feed(request: Request) -> MutationFeed:
    return request.app.state.mutation_feed


async def publish_mutation(feed: MutationFeed, mutation: RowMutation | None) -> None:
    """Publish after commit. A feed outage never fails the write itself."""
    if mutation is None:
        return
    try:
        await feed.publish(mutation)
    except Exception:
        logger.exception("failed to publish mutation table=%s type=%s", mutation.table, mutation.event_type)
