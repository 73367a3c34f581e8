from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class DebugReport(BaseModel):
    """Payload of ``GET /debug``: the configuration the proxy runs with."""

    whitelist: list[str] = Field(default_factory=list)
    """Parsed whitelist entries, sorted."""

    whitelist_raw: str = "not set"
    """Raw whitelist configuration value."""

    whitelist_length: int = 0

    allowed_hosts: list[str] = Field(default_factory=list)

    redirect_mode: str

    link_style: str


class UpstreamStatus(BaseModel):
    status: int
    status_text: str = ""


class NotFoundDiagnostic(BaseModel):
    """Payload returned in place of an upstream 404 when diagnostics are on."""

    message: str = (
        "Upstream returned 404. Check that the target URL is correct "
        "and that the repository is publicly visible."
    )
    target_url: str
    upstream: UpstreamStatus
    request_headers_sent: dict[str, str] = Field(default_factory=dict)


class CheckResult(BaseModel):
    """Outcome of ``github-proxy check`` for one destination."""

    input: str
    decision: str
    """``allow`` or ``deny``."""

    url: Optional[str] = None
    host: Optional[str] = None
    resource_key: Optional[str] = None
    status_code: Optional[int] = None
    reason: Optional[str] = None
