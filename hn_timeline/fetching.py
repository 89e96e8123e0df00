from __future__ import annotations

import asyncio
from typing import Iterable, Optional, Protocol, Sequence

from hn_timeline.constants import DEFAULT_FETCH_CONCURRENCY
from hn_timeline.logging_config import get_logger
from hn_timeline.models import HNItem

logger = get_logger(__name__)


class ItemSource(Protocol):
    async def get_item(self, item_id: int) -> Optional[HNItem]: ...


class ItemFetcher:
    """
    Single-flight item fetcher.

    At most one request per id is ever issued: concurrent callers share the
    pending task, and its result (None included) is kept for the fetcher's
    lifetime so later calls resolve without a round trip. Cancelling one
    caller never cancels the shared request.
    """

    def __init__(self, source: ItemSource) -> None:
        self.source = source
        self._requests: dict[int, asyncio.Task[Optional[HNItem]]] = {}

    def __contains__(self, item_id: int) -> bool:
        return item_id in self._requests

    async def fetch_item(self, item_id: int) -> Optional[HNItem]:
        request = self._requests.get(item_id)
        if request is not None:
            logger.debug("item-cache-hit", id=item_id)
        else:
            request = asyncio.ensure_future(self.source.get_item(item_id))
            self._requests[item_id] = request
            logger.debug("item-request", id=item_id)
        return await asyncio.shield(request)

    async def fetch_chunk(self, ids: Sequence[int]) -> list[Optional[HNItem]]:
        """Fetch `ids` in parallel; the result is aligned with the input."""
        return list(await asyncio.gather(*(self.fetch_item(i) for i in ids)))

    async def fetch_items(
        self,
        ids: Iterable[int],
        concurrency: int = DEFAULT_FETCH_CONCURRENCY,
    ) -> list[HNItem]:
        """
        Fetch `ids` in consecutive chunks of `concurrency`.

        A chunk must fully settle before the next one starts, so no more than
        `concurrency` requests are outstanding. Unavailable items are dropped.
        """
        pending = list(ids)
        size = max(1, concurrency)
        output: list[HNItem] = []
        for start in range(0, len(pending), size):
            items = await self.fetch_chunk(pending[start : start + size])
            output.extend(item for item in items if item)
        return output
