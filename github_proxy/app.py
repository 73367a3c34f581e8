"""Flask application for the GitHub proxy.

Routes:
- ``/`` and ``/ping``: usage text and liveness
- ``/health``: JSON health check
- ``/debug``: effective whitelist and modes
- everything else: the proxy pipeline

Pipeline: extract destination -> host allow-list -> resource key ->
whitelist -> forward -> rewrite response headers. Any stage may stop the
request by raising a ``ProxyError``, rendered by a single error handler.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

import requests
from flask import Flask, Response, request
from werkzeug.middleware.proxy_fix import ProxyFix

from github_proxy.audit import audit_log
from github_proxy.config import ProxyConfig
from github_proxy.constants import LINK_STYLE_QUERY, URL_QUERY_PARAM
from github_proxy.errors import ProxyError, UpstreamNotFound
from github_proxy.extractor import InboundTarget, extract_target_url
from github_proxy.forwarder import Forwarder, stream_response_generator, upstream_header_items
from github_proxy.logging_config import flask_request_middleware, get_logger
from github_proxy.models import DebugReport, NotFoundDiagnostic, UpstreamStatus
from github_proxy.policy import evaluate
from github_proxy.rewriter import proxied_url, rewrite_headers, status_line

logger = get_logger(__name__)

PROXY_METHODS = [
    "GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS",
    # WebDAV and extension verbs
    "PROPFIND", "PROPPATCH", "REPORT", "SEARCH", "MKCOL", "COPY", "MOVE", "LOCK", "UNLOCK",
]

# Reserved characters left as-is when re-quoting a path
_PATH_SAFE = "/:@!$&'()*+,;=~"


def _usage_text(origin: str, config: ProxyConfig) -> str:
    example = "https://github.com/user/repo"
    query_form = proxied_url(example, origin, LINK_STYLE_QUERY)
    path_form = f"{origin.rstrip('/')}/{example}"
    forms = [query_form, path_form]
    if config.link_style != LINK_STYLE_QUERY:
        forms.reverse()
    return "GitHub Proxy is running.\nUsage: " + "\n       ".join(forms) + "\n"


def _raw_path() -> str:
    """Request path without the leading slash, percent-encoding intact.

    ``request.path`` is already decoded, which would turn ``%23`` into a
    fragment and ``%2F`` into a separator. The undecoded target comes from
    RAW_URI / REQUEST_URI when the server provides it.
    """
    raw_uri = request.environ.get("RAW_URI") or request.environ.get("REQUEST_URI")
    if raw_uri and raw_uri.startswith("/"):
        path = raw_uri.partition("?")[0]
        # WSGI carries the raw bytes as latin-1
        path = path.encode("latin-1").decode("utf-8", errors="replace")
        path = quote(path, safe=_PATH_SAFE + "%")
        script_root = quote(request.script_root, safe=_PATH_SAFE)
        if script_root and path.startswith(script_root):
            path = path[len(script_root):]
        return path[1:]
    return quote(request.path, safe=_PATH_SAFE)[1:]


def _has_body() -> bool:
    if request.content_length:
        return True
    return "chunked" in request.headers.get("Transfer-Encoding", "").lower()


def create_app(
    config: Optional[ProxyConfig] = None,
    session: Optional[requests.Session] = None,
) -> Flask:
    """Build the proxy application.

    Args:
        config: Proxy configuration. Read from the environment when omitted.
        session: HTTP session for upstream calls. A header-less session is
            created when omitted.

    Returns:
        Configured Flask application.
    """
    if config is None:
        config = ProxyConfig.from_env()

    app = Flask(__name__)
    # /https://github.com/... must reach the catch-all with its // intact
    app.url_map.merge_slashes = False
    app.config["PROXY_CONFIG"] = config

    if config.trusted_proxies:
        n = config.trusted_proxies
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=n, x_proto=n, x_host=n, x_port=n, x_prefix=n)

    forwarder = Forwarder(config, session=session)
    flask_request_middleware(app)

    @app.route("/ping")
    def ping():
        return Response("pong", status=200, mimetype="text/plain")

    @app.route("/health")
    def health():
        """Health check endpoint."""
        return {"status": "healthy"}, 200

    @app.route("/debug")
    def debug():
        report = DebugReport(
            whitelist=config.whitelist.as_list(),
            whitelist_raw=config.whitelist_raw or "not set",
            whitelist_length=len(config.whitelist),
            allowed_hosts=sorted(config.allowed_hosts),
            redirect_mode=config.redirect_mode,
            link_style=config.link_style,
        )
        return Response(report.model_dump_json(indent=2), status=200, mimetype="application/json")

    @app.route("/", defaults={"path": ""}, methods=PROXY_METHODS)
    @app.route("/<path:path>", methods=PROXY_METHODS)
    def proxy(path):
        url_param = request.args.get(URL_QUERY_PARAM)
        raw_path = _raw_path()
        if not raw_path and not url_param:
            return Response(_usage_text(request.host_url, config), status=200, mimetype="text/plain")

        target = InboundTarget(
            path=raw_path,
            query_string=request.query_string.decode("utf-8", errors="ignore"),
            url_param=url_param,
        )
        target_url = extract_target_url(target, config.allowed_hosts)
        decision = evaluate(target_url, config)

        upstream = forwarder.forward(
            request.method,
            target_url,
            request.headers,
            body=request.stream if _has_body() else None,
        )

        try:
            audit_log(
                "proxy_allow",
                method=request.method,
                target_url=target_url,
                host=decision.host,
                resource_key=decision.resource_key,
                upstream_status=upstream.status_code,
            )

            headers = rewrite_headers(
                upstream_header_items(upstream),
                upstream.status_code,
                target_url,
                request.host_url,
                config,
            )
            response = Response(
                stream_response_generator(upstream, chunk_size=config.chunk_size),
                status=status_line(upstream.status_code, upstream.reason),
                headers=headers,
            )
            # werkzeug fills in text/html when the upstream sent no type
            if "Content-Type" not in upstream.headers:
                response.headers.pop("Content-Type", None)
            return response
        except BaseException:
            # Release the pooled connection if the body generator never takes over
            upstream.close()
            raise

    @app.errorhandler(ProxyError)
    def handle_proxy_error(error: ProxyError):
        event = "proxy_deny" if error.status_code in (400, 403) else "proxy_error"
        audit_log(
            event,
            method=request.method,
            path=request.path,
            reason=type(error).__name__,
            status_code=error.status_code,
            detail=str(error),
        )

        if isinstance(error, UpstreamNotFound):
            payload = NotFoundDiagnostic(
                target_url=error.target_url,
                upstream=UpstreamStatus(status=error.status, status_text=error.status_text),
                request_headers_sent=error.headers_sent,
            )
            return Response(payload.model_dump_json(indent=2), status=404, mimetype="application/json")

        return Response(str(error), status=error.status_code, mimetype="text/plain")

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {error}")
        return Response("Internal server error", status=500, mimetype="text/plain")

    return app
