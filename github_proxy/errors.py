"""Exception hierarchy for github-proxy.

Every stage of the request pipeline signals a terminal outcome by raising a
``ProxyError`` subclass. Each class carries the HTTP status the Flask error
handler turns it into, so callers can catch broad categories
(``ProxyError``) or specific failure modes.

This module is a base-layer module: it must NOT import from any
other ``github_proxy`` submodule.
"""

from __future__ import annotations

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for all request pipeline errors."""

    status_code: int = 500


class FormatError(ProxyError):
    """The inbound request does not encode a recognizable destination URL."""

    status_code = 400

    def __init__(self, raw_input: str):
        super().__init__(
            "Invalid URL format. Expected /https://<host>/<path> or /?url=<url>. "
            f"Received: {raw_input}"
        )
        self.raw_input = raw_input


class HostNotAllowed(ProxyError):
    """The destination host is not in the allowed host set."""

    status_code = 403

    def __init__(self, host: str):
        super().__init__(f"Host not allowed: {host}")
        self.host = host


class ResourceNotWhitelisted(ProxyError):
    """The destination resource is not covered by the whitelist."""

    status_code = 403

    def __init__(self, resource: Optional[str] = None):
        if resource:
            message = f"Repository not in whitelist: {resource}"
        else:
            message = "Repository not in whitelist"
        super().__init__(message)
        self.resource = resource


class UpstreamTransportError(ProxyError):
    """The upstream request failed at the network/transport level."""

    status_code = 500

    def __init__(self, target_url: str, detail: str):
        super().__init__(f"Error proxying to {target_url}: {detail}")
        self.target_url = target_url
        self.detail = detail


class UpstreamNotFound(ProxyError):
    """Upstream answered 404 and diagnostics are enabled."""

    status_code = 404

    def __init__(
        self,
        target_url: str,
        status: int,
        status_text: str,
        headers_sent: dict[str, Any],
    ):
        super().__init__(f"Upstream returned {status} for {target_url}")
        self.target_url = target_url
        self.status = status
        self.status_text = status_text
        self.headers_sent = headers_sent


class ConfigError(Exception):
    """Exception raised for configuration errors."""
