"""
Story link previews: an image and a short description for a story URL.

Resolution order is the page's own OpenGraph/Twitter meta tags, then a
reader-proxy markdown rendering for whatever is still missing, then the
host's logo for the image. Results are kept in memory and in the persistent
store under `PREVIEW_KEY_PREFIX + encoded url`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag

from hn_timeline.constants import (
    PREVIEW_HTTP_TIMEOUT,
    PREVIEW_KEY_PREFIX,
    PREVIEW_LOGO_BASE,
    PREVIEW_MIN_PARAGRAPH_LENGTH,
    PREVIEW_READER_BASE,
)
from hn_timeline.logging_config import get_logger
from hn_timeline.storage import KeyValueStore
from hn_timeline.url_utils import encode_uri_component, strip_scheme

logger = get_logger(__name__)

MARKDOWN_IMAGE_RE = re.compile(r"!\[[^\]]*]\((https?://[^)\s]+)\)", re.IGNORECASE)


@dataclass
class StoryPreview:
    image_url: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {"image_url": self.image_url, "description": self.description}


def storage_key(url: str) -> str:
    return f"{PREVIEW_KEY_PREFIX}{encode_uri_component(url)}"


def preview_fallback(host: Optional[str]) -> StoryPreview:
    return StoryPreview(image_url=f"{PREVIEW_LOGO_BASE}{host}" if host else None)


def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> Optional[str]:
    tag = soup.find("meta", attrs={attr: value})
    if isinstance(tag, Tag):
        content = tag.get("content")
        if isinstance(content, str):
            return content
    return None


def extract_og_from_html(html_text: str) -> StoryPreview:
    soup = BeautifulSoup(html_text, "html.parser")
    image = _meta_content(soup, "property", "og:image") or _meta_content(
        soup, "name", "twitter:image"
    )
    description = _meta_content(soup, "property", "og:description") or _meta_content(
        soup, "name", "description"
    )
    return StoryPreview(
        image_url=image or None,
        description=(description or "").strip() or None,
    )


def extract_from_reader_markdown(markdown: str) -> StoryPreview:
    image_match = MARKDOWN_IMAGE_RE.search(markdown)
    paragraphs = [
        line
        for line in (raw.strip() for raw in markdown.split("\n"))
        if len(line) > PREVIEW_MIN_PARAGRAPH_LENGTH
        and not line.startswith("Title:")
        and not line.startswith("URL Source:")
    ]
    return StoryPreview(
        image_url=image_match.group(1) if image_match else None,
        description=paragraphs[0] if paragraphs else None,
    )


class PreviewCache:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._memory: dict[str, StoryPreview] = {}

    def _read(self, url: str) -> Optional[StoryPreview]:
        try:
            raw = self.store.get(storage_key(url))
            if not raw:
                return None
            parsed = json.loads(raw)
        except Exception:
            logger.warning("preview-storage-read-failed", url=url)
            return None
        if (
            not isinstance(parsed, dict)
            or "image_url" not in parsed
            or "description" not in parsed
        ):
            return None
        return StoryPreview(
            image_url=parsed.get("image_url") or None,
            description=parsed.get("description") or None,
        )

    def get(self, url: Optional[str]) -> Optional[StoryPreview]:
        if not url:
            return None
        memory = self._memory.get(url)
        if memory is not None:
            logger.debug("preview-cache-hit-memory", url=url)
            return memory
        persisted = self._read(url)
        if persisted is not None:
            self._memory[url] = persisted
            logger.debug("preview-cache-hit-storage", url=url)
            return persisted
        logger.debug("preview-cache-miss", url=url)
        return None

    def set(self, url: str, preview: StoryPreview) -> None:
        self._memory[url] = preview
        try:
            self.store.set(storage_key(url), json.dumps(preview.to_dict()))
        except Exception:
            logger.warning("preview-storage-write-failed", url=url)


class PreviewFetcher:
    def __init__(
        self, cache: PreviewCache, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.cache = cache
        self.client = client or httpx.AsyncClient(
            follow_redirects=True, timeout=PREVIEW_HTTP_TIMEOUT
        )

    async def _get_text(self, url: str, label: str) -> Optional[str]:
        try:
            resp = await self.client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"{label}-fetch-failed", url=url, error=str(e))
            return None
        if not resp.is_success:
            logger.warning(
                f"{label}-fetch-non-ok",
                url=url,
                status=resp.status_code,
                status_text=resp.reason_phrase,
            )
            return None
        return resp.text

    async def fetch(self, url: str, host: Optional[str]) -> StoryPreview:
        cached = self.cache.get(url)
        if cached is not None and cached.image_url:
            logger.debug("preview-fetch-skip-cached-image", url=url)
            return cached

        preview = StoryPreview(
            image_url=cached.image_url if cached else None,
            description=cached.description if cached else None,
        )
        page = await self._get_text(url, "direct")
        if page is not None:
            preview = extract_og_from_html(page)

        if not preview.image_url or not preview.description:
            markdown = await self._get_text(
                f"{PREVIEW_READER_BASE}{strip_scheme(url)}", "reader"
            )
            if markdown is not None:
                fallback = extract_from_reader_markdown(markdown)
                preview = StoryPreview(
                    image_url=preview.image_url or fallback.image_url,
                    description=preview.description or fallback.description,
                )

        if not preview.image_url and host:
            preview.image_url = preview_fallback(host).image_url
            logger.debug("preview-fallback-logo-used", url=url, host=host)

        self.cache.set(url, preview)
        logger.debug(
            "preview-fetch-complete",
            url=url,
            has_image=bool(preview.image_url),
            has_description=bool(preview.description),
        )
        return preview

    async def close(self) -> None:
        await self.client.aclose()
