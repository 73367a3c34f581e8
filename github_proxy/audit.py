"""Structured audit events for proxy decisions.

Each allow/deny decision and each upstream failure is written as a single
JSON line to stderr so operators can reconstruct what the proxy did
without enabling debug logging.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from flask import has_request_context, request

from github_proxy.logging_config import get_context, get_logger

logger = get_logger(__name__)

SENSITIVE_KEYS = frozenset({
    "token", "authorization", "password", "secret", "auth", "cookie", "set-cookie",
})


def audit_log(event_type: str, ip: Optional[str] = None, **extra_data: Any) -> None:
    """Log a structured audit event as JSON to stderr.

    Args:
        event_type: Type of event (proxy_allow, proxy_deny, proxy_error).
        ip: Address of the requester. Taken from the current request when
            omitted.
        **extra_data: Event-specific fields. Sensitive keys are dropped.
    """
    if ip is None:
        ip = request.remote_addr if has_request_context() else "unknown"

    audit_entry: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "event_type": event_type,
        "ip": ip,
    }
    request_id = get_context().get("request_id")
    if request_id:
        audit_entry["request_id"] = request_id

    for key, value in extra_data.items():
        if key.lower() in SENSITIVE_KEYS:
            continue
        audit_entry[key] = value

    try:
        json.dump(audit_entry, sys.stderr, default=str)
        sys.stderr.write("\n")
        sys.stderr.flush()
    except (IOError, OSError) as e:
        logger.error(f"Audit log write failed ({e}): {event_type} - {audit_entry}")
