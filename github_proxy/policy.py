"""Destination policy: host allow-list, resource resolution, whitelist.

Security model:
- Only exact members of the allowed host set are ever contacted; there is
  no suffix matching, so ``github.com.evil.com`` and userinfo tricks such as
  ``github.com@evil.com`` are rejected.
- When a whitelist is configured, repository-scoped destinations must match
  an exact ``owner/repo`` entry, an ``owner/*`` entry or ``*/*``.
- Gists have no owner/repo shape and are opened only by ``*/*`` or
  ``gist/*``.
- Destinations with no repository scope (static assets, LFS objects, image
  proxy) are allowed so whitelisted projects still render and download.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import SplitResult

from github_proxy.config import ProxyConfig, Whitelist
from github_proxy.constants import API_HOST, GIST_HOST, OWNER_REPO_HOSTS
from github_proxy.errors import FormatError, HostNotAllowed, ResourceNotWhitelisted
from github_proxy.extractor import parse_destination


@dataclass(frozen=True)
class Decision:
    """Outcome of a successful policy evaluation."""

    url: str
    host: str
    resource_key: Optional[str]
    whitelist_applied: bool


def check_host(url: str, allowed_hosts: frozenset[str]) -> SplitResult:
    """Reject destinations whose host is not allowed.

    Args:
        url: Absolute destination URL.
        allowed_hosts: Exact host names that may be contacted.

    Returns:
        The split URL.

    Raises:
        FormatError: If the URL cannot be parsed.
        HostNotAllowed: If the host is not an exact member of allowed_hosts.
    """
    try:
        parts = parse_destination(url)
    except ValueError:
        raise FormatError(url)
    # urlsplit lower-cases hostname
    if parts.hostname not in allowed_hosts:
        raise HostNotAllowed(parts.hostname or "")
    return parts


def path_segments(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def resolve_resource_key(parts: SplitResult) -> Optional[str]:
    """Derive the ``owner/repo`` key a destination belongs to.

    Returns None for hosts and paths that are not repository scoped.
    """
    host = parts.hostname
    segments = path_segments(parts.path)

    if host in OWNER_REPO_HOSTS:
        if len(segments) >= 2:
            return f"{segments[0]}/{segments[1]}"
        return None

    if host == API_HOST:
        if len(segments) >= 3 and segments[0] == "repos":
            return f"{segments[1]}/{segments[2]}"
        return None

    return None


def authorize(parts: SplitResult, resource_key: Optional[str], whitelist: Whitelist) -> None:
    """Apply the whitelist to a destination.

    Raises:
        ResourceNotWhitelisted: If the destination is not covered.
    """
    if not whitelist:
        return

    if parts.hostname == GIST_HOST:
        if not whitelist.allows_gist():
            raise ResourceNotWhitelisted("gist")
        return

    if resource_key is not None and not whitelist.allows_repo(resource_key):
        raise ResourceNotWhitelisted(resource_key)


def evaluate(url: str, config: ProxyConfig) -> Decision:
    """Run the host guard, resource resolution and whitelist on a URL.

    Raises:
        FormatError, HostNotAllowed, ResourceNotWhitelisted
    """
    parts = check_host(url, config.allowed_hosts)
    resource_key = resolve_resource_key(parts)
    authorize(parts, resource_key, config.whitelist)
    return Decision(
        url=url,
        host=parts.hostname or "",
        resource_key=resource_key,
        whitelist_applied=bool(config.whitelist),
    )
