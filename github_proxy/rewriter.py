"""Response header rewriting.

Makes an upstream response usable through the proxy's origin:
- redirect ``Location`` values to allowed hosts are routed back through
  the proxy
- security headers that would block rendering under a foreign origin are
  dropped, along with hop-by-hop headers
- permissive CORS headers are attached
"""

from __future__ import annotations

from typing import Iterable, Optional
from urllib.parse import quote, urljoin, urlsplit

from github_proxy.config import ProxyConfig
from github_proxy.constants import (
    CORS_HEADERS,
    HOP_BY_HOP_HEADERS,
    LINK_STYLE_QUERY,
    REDIRECT_STATUSES,
    STRIPPED_RESPONSE_HEADERS,
    URL_QUERY_PARAM,
)

_CORS_NAMES = frozenset(name.lower() for name in CORS_HEADERS)


def proxied_url(url: str, proxy_origin: str, link_style: str) -> str:
    """Express an upstream URL as a URL on the proxy.

    Args:
        url: Absolute upstream URL.
        proxy_origin: Scheme and host of the proxy, e.g. ``https://p.example``.
        link_style: ``"query"`` for ``/?url=<encoded>``, ``"path"`` for
            ``/<url>``.
    """
    origin = proxy_origin.rstrip("/")
    if link_style == LINK_STYLE_QUERY:
        return f"{origin}/?{URL_QUERY_PARAM}={quote(url, safe='')}"
    return f"{origin}/{url}"


def rewrite_location(
    location: str,
    target_url: str,
    proxy_origin: str,
    config: ProxyConfig,
) -> str:
    """Route a redirect target back through the proxy when possible.

    Relative locations are resolved against the upstream URL first. Targets
    outside the allowed host set are returned as absolute URLs untouched,
    since the proxy would refuse them anyway. Unparseable values are passed
    through as received.
    """
    try:
        absolute = urljoin(target_url, location)
        host = urlsplit(absolute).hostname
    except ValueError:
        return location
    if host not in config.allowed_hosts:
        return absolute
    return proxied_url(absolute, proxy_origin, config.link_style)


def rewrite_headers(
    headers: Iterable[tuple[str, str]],
    status_code: int,
    target_url: str,
    proxy_origin: str,
    config: ProxyConfig,
) -> list[tuple[str, str]]:
    """Build the client-facing header list from upstream headers.

    Args:
        headers: Upstream (name, value) pairs.
        status_code: Upstream status code.
        target_url: URL the upstream request was sent to.
        proxy_origin: Scheme and host of the proxy.
        config: Proxy configuration (redirect mode, link style, hosts).

    Returns:
        Header pairs for the proxied response.
    """
    headers = list(headers)
    encoded = any(name.lower() == "content-encoding" for name, _ in headers)
    rewrite_redirects = status_code in REDIRECT_STATUSES and not config.follow_redirects

    result: list[tuple[str, str]] = []
    for name, value in headers:
        lowered = name.lower()
        if lowered in STRIPPED_RESPONSE_HEADERS or lowered in HOP_BY_HOP_HEADERS:
            continue
        if lowered in _CORS_NAMES:
            continue
        # The relayed stream is decoded, so the encoded framing no longer applies
        if encoded and lowered in ("content-encoding", "content-length"):
            continue
        if lowered == "location" and rewrite_redirects:
            value = rewrite_location(value, target_url, proxy_origin, config)
        result.append((name, value))

    result.extend(CORS_HEADERS.items())
    return result


def status_line(status_code: int, reason: Optional[str]) -> str:
    """Status string carrying the upstream reason phrase."""
    if reason:
        return f"{status_code} {reason}"
    return str(status_code)
