"""Hypothesis-based fuzz tests for destination policy and header handling.

Fuzzes the request pipeline with arbitrary inbound paths, query values,
hostnames and upstream headers. Expected rejections (FormatError,
HostNotAllowed, ResourceNotWhitelisted) are fine -- the invariant is that
no other exception escapes and that nothing off the allow-list is ever
accepted.

Security properties tested:
- extraction + policy never raise anything but ProxyError subclasses
- an accepted destination always has an allowed host
- hosts off the allow-list are rejected regardless of path
- the outbound header set never contains anything beyond the pass-through set
- stripped security headers never survive rewriting, in any letter case
- percent-encoded path segments are forwarded without being decoded
"""

from unittest.mock import MagicMock
from urllib.parse import quote, urlsplit

import pytest
import requests
from hypothesis import given, settings, HealthCheck
import hypothesis.strategies as st
from requests.structures import CaseInsensitiveDict

from github_proxy.app import create_app
from github_proxy.config import ProxyConfig, Whitelist
from github_proxy.constants import (
    ALLOWED_HOSTS,
    FORWARDED_REQUEST_HEADERS,
    STRIPPED_RESPONSE_HEADERS,
)
from github_proxy.errors import FormatError, HostNotAllowed, ProxyError, ResourceNotWhitelisted
from github_proxy.extractor import InboundTarget, extract_target_url
from github_proxy.forwarder import build_upstream_headers
from github_proxy.policy import authorize, evaluate, resolve_resource_key
from github_proxy.rewriter import rewrite_headers

# ---------------------------------------------------------------------------
# Module markers
# ---------------------------------------------------------------------------

pytestmark = [
    pytest.mark.security,
]

# ---------------------------------------------------------------------------
# Hypothesis strategies
# ---------------------------------------------------------------------------

# Inbound paths: arbitrary text plus near-misses built around allowed hosts
path_strategy = st.one_of(
    st.text(min_size=0, max_size=200),
    st.builds(
        lambda prefix, host, rest: f"{prefix}{host}{rest}",
        st.sampled_from(["", "https://", "https:/", "http://", "https:///", "//"]),
        st.sampled_from(sorted(ALLOWED_HOSTS) + ["evil.com", "github.com.evil.com", "github.com@evil.com"]),
        st.text(min_size=0, max_size=80),
    ),
)

# Values of the ?url= parameter
url_param_strategy = st.one_of(
    st.none(),
    st.text(min_size=0, max_size=200),
    st.from_regex(r"https?://[^/]+/[^/]+", fullmatch=True),
)

# Hostnames that are syntactically plausible
hostname_strategy = st.from_regex(r"[a-z0-9][a-z0-9.-]{0,40}", fullmatch=True)


def _random_case(name):
    return st.lists(st.booleans(), min_size=len(name), max_size=len(name)).map(
        lambda flags: "".join(c.upper() if flag else c for c, flag in zip(name, flags))
    )


stripped_name_strategy = st.sampled_from(sorted(STRIPPED_RESPONSE_HEADERS)).flatmap(_random_case)

header_value_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("L", "N", "P", "S", "Zs")),
    min_size=0,
    max_size=100,
)

upstream_headers_strategy = st.lists(
    st.tuples(
        st.one_of(stripped_name_strategy, st.sampled_from(["Location", "Content-Type", "ETag"])),
        header_value_strategy,
    ),
    min_size=0,
    max_size=15,
)

# Single path segments; dot segments are left to URL normalization
encoded_segment_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("L", "N", "P", "S", "Zs")),
    min_size=1,
    max_size=20,
).filter(lambda s: s not in (".", ".."))

inbound_headers_strategy = st.dictionaries(
    st.one_of(
        st.sampled_from(list(FORWARDED_REQUEST_HEADERS) + ["authorization", "cookie", "user-agent", "host"]),
        st.text(min_size=1, max_size=30),
    ),
    st.text(min_size=0, max_size=50),
    max_size=15,
)

# ---------------------------------------------------------------------------
# Fuzz tests
# ---------------------------------------------------------------------------


class TestDestinationFuzzing:
    """Fuzz tests for extraction and policy evaluation."""

    @settings(
        derandomize=True,
        max_examples=300,
        suppress_health_check=[HealthCheck.too_slow],
    )
    @given(path=path_strategy, query_string=st.text(max_size=50), url_param=url_param_strategy)
    def test_pipeline_never_crashes_and_never_leaves_allow_list(self, path, query_string, url_param):
        """Arbitrary inbound input is either rejected or lands on an allowed host."""
        target = InboundTarget(path=path, query_string=query_string, url_param=url_param)
        try:
            url = extract_target_url(target, ALLOWED_HOSTS)
            decision = evaluate(url, ProxyConfig())
        except ProxyError:
            return
        assert decision.host in ALLOWED_HOSTS

    @settings(
        derandomize=True,
        max_examples=200,
        suppress_health_check=[HealthCheck.too_slow],
    )
    @given(host=hostname_strategy, rest=st.text(max_size=60))
    def test_unlisted_hosts_rejected(self, host, rest):
        """A host outside the allow-list is rejected whatever the path says."""
        if host in ALLOWED_HOSTS:
            return
        with pytest.raises((HostNotAllowed, FormatError)):
            evaluate(f"https://{host}/{rest.lstrip('/')}", ProxyConfig())

    @settings(
        derandomize=True,
        max_examples=200,
        suppress_health_check=[HealthCheck.too_slow],
    )
    @given(host=st.sampled_from(sorted(ALLOWED_HOSTS)), path=st.text(max_size=80))
    def test_global_wildcard_authorizes_everything(self, host, path):
        try:
            decision = evaluate(f"https://{host}/{path.lstrip('/')}", ProxyConfig.with_whitelist(["*/*"]))
        except FormatError:
            return
        assert decision.whitelist_applied

    @settings(
        derandomize=True,
        max_examples=200,
        suppress_health_check=[HealthCheck.too_slow],
    )
    @given(
        owner=st.from_regex(r"[A-Za-z0-9_.-]{1,20}", fullmatch=True),
        repo=st.from_regex(r"[A-Za-z0-9_.-]{1,20}", fullmatch=True),
        other=st.from_regex(r"[A-Za-z0-9_.-]{1,20}", fullmatch=True),
    )
    def test_owner_wildcard_scoped_to_owner(self, owner, repo, other):
        """``owner/*`` never authorizes a repository of a different owner."""
        whitelist = Whitelist.parse(f"{owner}/*")
        parts = urlsplit(f"https://github.com/{other}/{repo}")
        key = resolve_resource_key(parts)
        if other == owner:
            authorize(parts, key, whitelist)
        else:
            with pytest.raises(ResourceNotWhitelisted):
                authorize(parts, key, whitelist)


class TestHeaderFuzzing:
    """Fuzz tests for outbound and response header handling."""

    @settings(
        derandomize=True,
        max_examples=200,
        suppress_health_check=[HealthCheck.too_slow],
    )
    @given(inbound=inbound_headers_strategy)
    def test_outbound_headers_restricted(self, inbound):
        headers = build_upstream_headers(inbound)
        allowed = set(FORWARDED_REQUEST_HEADERS) | {"User-Agent"}
        assert set(headers) <= allowed

    @settings(
        derandomize=True,
        max_examples=300,
        suppress_health_check=[HealthCheck.too_slow],
    )
    @given(
        headers=upstream_headers_strategy,
        status=st.sampled_from([200, 301, 302, 303, 304, 307, 308, 404]),
        redirect_mode=st.sampled_from(["rewrite", "follow"]),
    )
    def test_stripped_headers_never_survive(self, headers, status, redirect_mode):
        config = ProxyConfig(redirect_mode=redirect_mode)
        result = rewrite_headers(headers, status, "https://github.com/a/b", "http://localhost/", config)
        names = {name.lower() for name, _ in result}
        assert not names & STRIPPED_RESPONSE_HEADERS
        assert "access-control-allow-origin" in names


class TestEncodedPathFuzzing:
    """Fuzz percent-encoded path segments through the Flask app."""

    @staticmethod
    def _client():
        upstream = MagicMock()
        upstream.status_code = 200
        upstream.reason = "OK"
        upstream.headers = CaseInsensitiveDict()
        upstream.raw.headers.items.return_value = []
        upstream.iter_content = MagicMock(return_value=iter([b""]))
        session = MagicMock(spec=requests.Session)
        session.request.return_value = upstream
        app = create_app(ProxyConfig(), session=session)
        app.config["TESTING"] = True
        return app.test_client(), session

    @settings(
        derandomize=True,
        max_examples=100,
        suppress_health_check=[HealthCheck.too_slow],
    )
    @given(segments=st.lists(encoded_segment_strategy, min_size=1, max_size=5))
    def test_quoted_segments_forwarded_verbatim(self, segments):
        """Quoted path segments reach the upstream byte for byte."""
        prefix = "https://raw.githubusercontent.com/o/r/main/"
        path = "/".join(quote(segment, safe="") for segment in segments)
        inbound = f"/{prefix}{path}"

        client, session = self._client()
        response = client.get(inbound, environ_overrides={"RAW_URI": inbound})
        assert response.status_code == 200
        assert session.request.call_args.kwargs["url"] == prefix + path
