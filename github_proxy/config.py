"""Configuration loader for github-proxy.

Builds an immutable :class:`ProxyConfig` from environment variables. The
configuration is constructed once per process and injected into
:func:`github_proxy.app.create_app`; nothing in the request path reads the
environment directly.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from github_proxy.constants import (
    ALLOWED_HOSTS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    GIST_WILDCARD,
    GLOBAL_WILDCARD,
    LINK_STYLE_QUERY,
    LINK_STYLES,
    REDIRECT_MODE_REWRITE,
    REDIRECT_MODES,
    WHITELIST_ENV,
    WHITELIST_SEPARATORS,
)
from github_proxy.errors import ConfigError

logger = logging.getLogger(__name__)

# owner/repo, owner/* or */*
_ENTRY_PATTERN = re.compile(r"^[^/\s]+/[^/\s]+$")


@dataclass(frozen=True)
class Whitelist:
    """Repository whitelist with exact, owner-wildcard and global entries.

    An empty whitelist disables authorization entirely.
    """

    entries: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Whitelist":
        """Parse a comma (or full-width comma) separated whitelist string.

        Args:
            raw: Delimited entries, e.g. ``"owner/repo, other/*"``. ``None``
                or blank yields an empty whitelist.

        Returns:
            Whitelist with trimmed, non-empty entries.
        """
        if not raw:
            return cls()
        items = [item.strip() for item in re.split(WHITELIST_SEPARATORS, raw)]
        entries = frozenset(item for item in items if item)
        for entry in sorted(entries):
            if not _ENTRY_PATTERN.match(entry):
                logger.warning(f"Whitelist entry '{entry}' is not owner/repo shaped and will never match")
        return cls(entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, entry: object) -> bool:
        return entry in self.entries

    def allows_repo(self, resource_key: str) -> bool:
        """Check an ``owner/repo`` key against the entries."""
        if GLOBAL_WILDCARD in self.entries or resource_key in self.entries:
            return True
        owner = resource_key.split("/", 1)[0]
        return bool(owner) and f"{owner}/*" in self.entries

    def allows_gist(self) -> bool:
        """Gists have no owner/repo shape; only wildcard switches open them."""
        return GLOBAL_WILDCARD in self.entries or GIST_WILDCARD in self.entries

    def as_list(self) -> list[str]:
        return sorted(self.entries)


def _parse_bool(name: str, value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got '{value}'")


def _parse_int(name: str, value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{value}'")


@dataclass(frozen=True)
class ProxyConfig:
    """Process-wide, read-only proxy configuration."""

    whitelist: Whitelist = field(default_factory=Whitelist)
    whitelist_raw: Optional[str] = None
    allowed_hosts: frozenset[str] = ALLOWED_HOSTS
    redirect_mode: str = REDIRECT_MODE_REWRITE
    link_style: str = LINK_STYLE_QUERY
    diagnose_not_found: bool = False
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    read_timeout: int = DEFAULT_READ_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    trusted_proxies: int = 0

    def __post_init__(self):
        """Validate configuration values."""
        if self.redirect_mode not in REDIRECT_MODES:
            raise ConfigError(
                f"Invalid redirect mode '{self.redirect_mode}'. "
                f"Valid modes: {', '.join(REDIRECT_MODES)}"
            )
        if self.link_style not in LINK_STYLES:
            raise ConfigError(
                f"Invalid link style '{self.link_style}'. "
                f"Valid styles: {', '.join(LINK_STYLES)}"
            )
        if self.connect_timeout <= 0:
            raise ConfigError(f"Connect timeout must be positive, got {self.connect_timeout}")
        if self.read_timeout <= 0:
            raise ConfigError(f"Read timeout must be positive, got {self.read_timeout}")
        if self.chunk_size <= 0:
            raise ConfigError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.trusted_proxies < 0:
            raise ConfigError(f"Trusted proxies must not be negative, got {self.trusted_proxies}")
        if not self.allowed_hosts:
            raise ConfigError("At least one allowed host is required")

    @property
    def follow_redirects(self) -> bool:
        return self.redirect_mode != REDIRECT_MODE_REWRITE

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "ProxyConfig":
        """Build configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.
            **overrides: Field values that take precedence over the
                environment (``None`` values are ignored). A ``whitelist``
                override is given as the raw delimited string.

        Returns:
            Validated ProxyConfig.

        Raises:
            ConfigError: If any value is invalid.
        """
        env = os.environ if environ is None else environ
        overrides = {k: v for k, v in overrides.items() if v is not None}

        whitelist_raw = overrides.pop("whitelist", None)
        if whitelist_raw is None:
            whitelist_raw = env.get(WHITELIST_ENV)

        values = {
            "redirect_mode": env.get("GITHUB_PROXY_REDIRECT_MODE", REDIRECT_MODE_REWRITE).strip().lower(),
            "link_style": env.get("GITHUB_PROXY_LINK_STYLE", LINK_STYLE_QUERY).strip().lower(),
            "diagnose_not_found": _parse_bool(
                "GITHUB_PROXY_DIAGNOSE_404", env.get("GITHUB_PROXY_DIAGNOSE_404"), False
            ),
            "connect_timeout": _parse_int(
                "GITHUB_PROXY_CONNECT_TIMEOUT", env.get("GITHUB_PROXY_CONNECT_TIMEOUT"), DEFAULT_CONNECT_TIMEOUT
            ),
            "read_timeout": _parse_int(
                "GITHUB_PROXY_READ_TIMEOUT", env.get("GITHUB_PROXY_READ_TIMEOUT"), DEFAULT_READ_TIMEOUT
            ),
            "trusted_proxies": _parse_int(
                "GITHUB_PROXY_TRUSTED_PROXIES", env.get("GITHUB_PROXY_TRUSTED_PROXIES"), 0
            ),
        }
        values.update(overrides)

        return cls(
            whitelist=Whitelist.parse(whitelist_raw),
            whitelist_raw=whitelist_raw,
            **values,
        )

    @classmethod
    def with_whitelist(cls, entries: Iterable[str], **kwargs) -> "ProxyConfig":
        """Convenience constructor from an iterable of whitelist entries."""
        raw = ",".join(entries)
        return cls(whitelist=Whitelist.parse(raw), whitelist_raw=raw or None, **kwargs)
