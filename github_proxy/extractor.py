"""Destination URL extraction.

Recovers the absolute upstream URL an inbound request is aimed at. Several
encodings are accepted because browsers, other proxies and documentation
links mangle ``https://`` in different ways:

1. ``/https://github.com/a/b``   full scheme, used verbatim
2. ``/https:/github.com/a/b``    collapsed double slash, repaired
3. ``/github.com/a/b``           scheme omitted, ``https://`` prepended
4. ``/?url=https%3A%2F%2F...``   whole URL in the ``url`` query parameter

Each form is a pure function returning a candidate URL or ``None``; the
first candidate wins and must parse as an absolute URL.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import SplitResult, urlsplit, urlunsplit

from github_proxy.constants import URL_QUERY_PARAM
from github_proxy.errors import FormatError

HTTPS_PREFIX = "https://"
COLLAPSED_HTTPS_PREFIX = "https:/"


@dataclass(frozen=True)
class InboundTarget:
    """The parts of an inbound request that can carry a destination."""

    path: str
    """Request path without the leading slash."""

    query_string: str = ""
    """Raw inbound query string, appended to path-form destinations."""

    url_param: Optional[str] = None
    """Decoded value of the ``url`` query parameter, if present."""

    @property
    def raw(self) -> str:
        """The inbound input as the client sent it, for error messages."""
        raw = "/" + self.path
        if self.query_string:
            raw += "?" + self.query_string
        return raw


def _with_query(url: str, query_string: str) -> str:
    if not query_string:
        return url
    return url + ("&" if "?" in url else "?") + query_string


def from_full_scheme(target: InboundTarget, allowed_hosts: frozenset[str]) -> Optional[str]:
    if target.path.startswith(HTTPS_PREFIX):
        return _with_query(target.path, target.query_string)
    return None


def from_collapsed_scheme(target: InboundTarget, allowed_hosts: frozenset[str]) -> Optional[str]:
    path = target.path
    if path.startswith(COLLAPSED_HTTPS_PREFIX) and not path.startswith(HTTPS_PREFIX):
        rebuilt = HTTPS_PREFIX + path[len(COLLAPSED_HTTPS_PREFIX):]
        return _with_query(rebuilt, target.query_string)
    return None


def from_bare_host(target: InboundTarget, allowed_hosts: frozenset[str]) -> Optional[str]:
    # The host must be the whole first segment: github.com.evil.com does not count
    first_segment = target.path.split("/", 1)[0]
    if first_segment and first_segment in allowed_hosts:
        return _with_query(HTTPS_PREFIX + target.path, target.query_string)
    return None


def from_query_param(target: InboundTarget, allowed_hosts: frozenset[str]) -> Optional[str]:
    if target.url_param:
        return target.url_param.strip()
    return None


Extractor = Callable[[InboundTarget, frozenset], Optional[str]]

EXTRACTORS: tuple[Extractor, ...] = (
    from_full_scheme,
    from_collapsed_scheme,
    from_bare_host,
    from_query_param,
)
"""Extraction forms in priority order."""


def parse_destination(url: str) -> SplitResult:
    """Parse and validate an absolute http(s) URL.

    Args:
        url: Candidate destination URL.

    Returns:
        The split URL.

    Raises:
        ValueError: If the URL is not absolute http(s) with a hostname, or
            its port is invalid.
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise ValueError(f"unsupported scheme '{parts.scheme}'")
    if not parts.hostname:
        raise ValueError("missing host")
    # Accessing .port validates it (raises ValueError when out of range)
    parts.port
    return parts


def extract_target_url(target: InboundTarget, allowed_hosts: frozenset[str]) -> str:
    """Recover the destination URL from an inbound request.

    Args:
        target: Path, query string and ``url`` parameter of the request.
        allowed_hosts: Hosts recognized by the scheme-less path form.

    Returns:
        Canonical absolute destination URL. Plain ``http`` destinations are
        upgraded to ``https``; every allowed host serves TLS.

    Raises:
        FormatError: If no form matches or the result is not an absolute URL.
    """
    for extractor in EXTRACTORS:
        candidate = extractor(target, allowed_hosts)
        if candidate is None:
            continue
        try:
            parts = parse_destination(candidate)
        except ValueError:
            raise FormatError(target.raw)
        if parts.scheme == "http":
            return urlunsplit(parts._replace(scheme="https"))
        return candidate
    raise FormatError(target.raw)
