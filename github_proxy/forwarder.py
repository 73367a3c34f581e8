"""Upstream forwarding.

Issues the outbound request with a sanitized header set and relays the
upstream body as a memory-bounded stream. Transport failures become
:class:`UpstreamTransportError`; nothing is retried.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional

import requests

from github_proxy.config import ProxyConfig
from github_proxy.constants import FORWARDED_REQUEST_HEADERS, USER_AGENT
from github_proxy.errors import UpstreamNotFound, UpstreamTransportError
from github_proxy.logging_config import get_logger

logger = get_logger(__name__)


def new_session() -> requests.Session:
    """Create an HTTP session that sends no headers of its own.

    requests adds User-Agent, Accept, Accept-Encoding and Connection by
    default; clearing them keeps the outbound set exactly what
    :func:`build_upstream_headers` produces.
    """
    session = requests.Session()
    session.headers.clear()
    return session


def build_upstream_headers(inbound_headers: Mapping[str, str]) -> dict[str, str]:
    """Reconstruct the outbound header set from an inbound request.

    Only accept, accept-language and content-type pass through; the
    User-Agent is always replaced.
    """
    headers = {}
    for name in FORWARDED_REQUEST_HEADERS:
        value = inbound_headers.get(name)
        if value:
            headers[name] = value
    headers["User-Agent"] = USER_AGENT
    return headers


def upstream_header_items(response: requests.Response) -> list[tuple[str, str]]:
    """Upstream header lines, repeated headers kept as separate entries.

    ``response.headers`` comma-joins repeats, which breaks ``Set-Cookie``
    (its ``expires`` dates contain commas). urllib3's header dict on
    ``response.raw`` still holds every line.
    """
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is None:
        return list(response.headers.items())
    return list(raw_headers.items())


def stream_response_generator(response: requests.Response, chunk_size: int = 8192) -> Iterator[bytes]:
    """Yield the upstream body in chunks, closing the upstream when done.

    The WSGI server closes this generator when the client disconnects,
    which runs the ``finally`` block and aborts the upstream transfer.

    Args:
        response: requests.Response object with stream=True
        chunk_size: Size of chunks to read (default 8192 bytes)

    Yields:
        bytes: Response data chunks
    """
    try:
        for chunk in response.iter_content(chunk_size=chunk_size):
            if chunk:  # filter out keep-alive new chunks
                yield chunk
    except requests.RequestException as e:
        logger.error(f"Error streaming response from {response.url}: {e}")
        raise
    finally:
        response.close()


class Forwarder:
    """Sends one inbound request to its validated destination."""

    def __init__(self, config: ProxyConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session if session is not None else new_session()

    def forward(
        self,
        method: str,
        url: str,
        inbound_headers: Mapping[str, str],
        body: Any = None,
    ) -> requests.Response:
        """Issue the upstream request.

        Args:
            method: Inbound HTTP method, used unchanged.
            url: Validated destination URL.
            inbound_headers: Inbound request headers (filtered here).
            body: Inbound body stream, or None when the request has none.

        Returns:
            The upstream response, opened with ``stream=True``.

        Raises:
            UpstreamTransportError: On any network/transport failure.
            UpstreamNotFound: On upstream 404 when diagnostics are enabled.
        """
        headers = build_upstream_headers(inbound_headers)
        try:
            upstream = self.session.request(
                method=method,
                url=url,
                headers=headers,
                data=body,
                allow_redirects=self.config.follow_redirects,
                timeout=(self.config.connect_timeout, self.config.read_timeout),
                stream=True,
            )
        except requests.RequestException as e:
            logger.error(f"Upstream request to {url} failed: {e}")
            raise UpstreamTransportError(url, str(e))

        if upstream.status_code == 404 and self.config.diagnose_not_found:
            reason = upstream.reason or ""
            upstream.close()
            raise UpstreamNotFound(url, 404, reason, headers)

        return upstream
