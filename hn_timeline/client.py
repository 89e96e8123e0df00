from __future__ import annotations

from typing import Optional, cast

import httpx

from hn_timeline.constants import (
    ERROR_BODY_MAX_CHARS,
    HN_API_BASE,
    HN_HTTP_CONNECT_TIMEOUT,
    HN_HTTP_TIMEOUT,
    HN_USER_AGENT,
)
from hn_timeline.logging_config import get_logger
from hn_timeline.models import HNItem

logger = get_logger(__name__)


class UpstreamError(Exception):
    """The top stories listing could not be read. Fatal to the current refresh."""


def _response_error_message(resp: httpx.Response, label: str) -> str:
    body = resp.text.strip() if resp.content else ""
    suffix = f": {body[:ERROR_BODY_MAX_CHARS]}" if body else ""
    return f"{label} ({resp.status_code} {resp.reason_phrase}){suffix}"


class HNClient:
    """Read-only client for the Firebase Hacker News API."""

    BASE_URL: str = HN_API_BASE

    def __init__(self, base_url: Optional[str] = None) -> None:
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=base_url or self.BASE_URL,
            follow_redirects=True,
            headers={"User-Agent": HN_USER_AGENT},
            timeout=httpx.Timeout(HN_HTTP_TIMEOUT, connect=HN_HTTP_CONNECT_TIMEOUT),
        )

    async def list_top_ids(self) -> list[int]:
        logger.debug("topstories-request")
        try:
            resp: httpx.Response = await self.client.get("/topstories.json")
        except httpx.HTTPError as e:
            raise UpstreamError(f"Unable to fetch top stories: {e}") from e

        if not resp.is_success:
            raise UpstreamError(
                _response_error_message(resp, "Unable to fetch top stories")
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamError("Top stories response was not valid JSON") from e
        if not isinstance(payload, list):
            raise UpstreamError("Top stories response was not a valid array")

        logger.debug("topstories-response", count=len(payload))
        return [int(i) for i in payload if isinstance(i, int)]

    async def get_item(self, item_id: int) -> Optional[HNItem]:
        """Fetch one item. Any failure is reported as None."""
        try:
            resp: httpx.Response = await self.client.get(f"/item/{item_id}.json")
        except httpx.HTTPError as e:
            logger.warning("item-request-failed", id=item_id, error=str(e))
            return None

        if not resp.is_success:
            logger.warning(
                "item-non-ok",
                id=item_id,
                status=resp.status_code,
                status_text=resp.reason_phrase,
            )
            return None
        try:
            data = resp.json()
        except ValueError as e:
            logger.warning("item-bad-json", id=item_id, error=str(e))
            return None
        if not isinstance(data, dict):
            logger.debug("item-response", id=item_id, has_item=False, type=None)
            return None

        logger.debug("item-response", id=item_id, has_item=True, type=data.get("type"))
        return cast(HNItem, data)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> HNClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
