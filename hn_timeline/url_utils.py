from __future__ import annotations

from typing import Optional
from urllib.parse import quote, urlsplit


def parse_host(url: str) -> Optional[str]:
    """Hostname of `url` without a leading `www.`, or None if it has none."""
    if not url:
        return None
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def encode_uri_component(value: str) -> str:
    # Same reserved set as JavaScript's encodeURIComponent.
    return quote(value, safe="-_.!~*'()")


def strip_scheme(url: str) -> str:
    parts = url.split("://", 1)
    if len(parts) == 2 and parts[0].lower() in ("http", "https"):
        return parts[1]
    return url
