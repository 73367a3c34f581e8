"""Fixed values for github-proxy.

Upstream host names, header sets and configuration defaults. Everything that
can be changed per deployment is read by :mod:`github_proxy.config`.
"""

from __future__ import annotations

from github_proxy import __version__

# ============================================================================
# Upstream Hosts
# ============================================================================

GITHUB_HOST: str = "github.com"
RAW_HOST: str = "raw.githubusercontent.com"
API_HOST: str = "api.github.com"
GIST_HOST: str = "gist.github.com"
CODELOAD_HOST: str = "codeload.github.com"

ALLOWED_HOSTS: frozenset[str] = frozenset({
    GITHUB_HOST,
    RAW_HOST,
    API_HOST,
    GIST_HOST,
    CODELOAD_HOST,                          # archive downloads
    "objects.githubusercontent.com",        # LFS objects
    "release-assets.githubusercontent.com", # release downloads
    "github.githubassets.com",              # static assets
    "camo.githubusercontent.com",           # image proxy
})
"""Hosts a destination URL may point at."""

# Hosts whose paths start with /<owner>/<repo>
OWNER_REPO_HOSTS: frozenset[str] = frozenset({GITHUB_HOST, RAW_HOST, CODELOAD_HOST})

# ============================================================================
# Whitelist
# ============================================================================

WHITELIST_ENV: str = "GITHUB_WHITELIST"
GLOBAL_WILDCARD: str = "*/*"
GIST_WILDCARD: str = "gist/*"

# Plain comma and full-width comma
WHITELIST_SEPARATORS: str = r"[,，]"

# ============================================================================
# Request / Response Headers
# ============================================================================

FORWARDED_REQUEST_HEADERS: tuple[str, ...] = ("accept", "accept-language", "content-type")
"""Inbound headers passed upstream when present. Nothing else is forwarded."""

USER_AGENT: str = f"github-proxy/{__version__}"

STRIPPED_RESPONSE_HEADERS: frozenset[str] = frozenset({
    "content-security-policy",
    "content-security-policy-report-only",
    "strict-transport-security",
    "x-frame-options",
})

HOP_BY_HOP_HEADERS: frozenset[str] = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

REDIRECT_STATUSES: frozenset[int] = frozenset({301, 302, 303, 307, 308})

# ============================================================================
# Modes
# ============================================================================

REDIRECT_MODE_REWRITE: str = "rewrite"
REDIRECT_MODE_FOLLOW: str = "follow"
REDIRECT_MODES: tuple[str, ...] = (REDIRECT_MODE_REWRITE, REDIRECT_MODE_FOLLOW)

LINK_STYLE_QUERY: str = "query"
LINK_STYLE_PATH: str = "path"
LINK_STYLES: tuple[str, ...] = (LINK_STYLE_QUERY, LINK_STYLE_PATH)

URL_QUERY_PARAM: str = "url"

# ============================================================================
# Defaults
# ============================================================================

DEFAULT_CONNECT_TIMEOUT: int = 30
DEFAULT_READ_TIMEOUT: int = 600
DEFAULT_CHUNK_SIZE: int = 8192
DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8080
