"""Click-based CLI entrypoint for github-proxy.

Commands:
    serve   run the proxy server
    check   evaluate one destination against the policy without forwarding
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs

import click

from github_proxy import __version__
from github_proxy.config import ProxyConfig
from github_proxy.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    LINK_STYLES,
    REDIRECT_MODES,
    URL_QUERY_PARAM,
)
from github_proxy.errors import ConfigError, ProxyError
from github_proxy.extractor import InboundTarget, extract_target_url
from github_proxy.logging_config import get_logger, setup_logging
from github_proxy.models import CheckResult
from github_proxy.policy import evaluate

logger = get_logger(__name__)


def _load_config(**overrides) -> ProxyConfig:
    try:
        return ProxyConfig.from_env(**overrides)
    except ConfigError as exc:
        raise click.ClickException(str(exc))


def _inbound_target(value: str) -> InboundTarget:
    """Interpret a command-line destination the way the server would.

    Accepts anything a client could put after the proxy origin, e.g.
    ``https://github.com/a/b``, ``/github.com/a/b`` or ``/?url=...``.
    """
    path, _, query_string = value.lstrip("/").partition("?")
    url_values = parse_qs(query_string).get(URL_QUERY_PARAM) if not path else None
    return InboundTarget(
        path=path,
        query_string=query_string,
        url_param=url_values[0] if url_values else None,
    )


@click.group()
@click.version_option(__version__, prog_name="github-proxy")
def cli() -> None:
    """github-proxy - allow-listed reverse proxy for GitHub."""


@cli.command()
@click.option("--host", envvar="GITHUB_PROXY_HOST", default=DEFAULT_HOST, show_default=True, help="Bind address")
@click.option("--port", envvar="GITHUB_PROXY_PORT", type=int, default=DEFAULT_PORT, show_default=True, help="Bind port")
@click.option("--whitelist", default=None, help="Whitelist entries (overrides GITHUB_WHITELIST)")
@click.option("--redirect-mode", type=click.Choice(REDIRECT_MODES), default=None, help="Rewrite or follow upstream redirects")
@click.option("--link-style", type=click.Choice(LINK_STYLES), default=None, help="Shape of rewritten redirect links")
@click.option("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
@click.option("--debug", is_flag=True, help="Run Flask in debug mode")
def serve(
    host: str,
    port: int,
    whitelist: Optional[str],
    redirect_mode: Optional[str],
    link_style: Optional[str],
    log_level: Optional[str],
    debug: bool,
) -> None:
    """Run the proxy server."""
    from github_proxy.app import create_app

    setup_logging(level=log_level)
    config = _load_config(whitelist=whitelist, redirect_mode=redirect_mode, link_style=link_style)
    app = create_app(config)

    logger.info(
        f"Starting github-proxy on {host}:{port} "
        f"(redirects: {config.redirect_mode}, whitelist entries: {len(config.whitelist)})"
    )
    app.run(host=host, port=port, debug=debug, threaded=True)


@cli.command()
@click.argument("target")
@click.option("--whitelist", default=None, help="Whitelist entries (overrides GITHUB_WHITELIST)")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def check(ctx: click.Context, target: str, whitelist: Optional[str], json_output: bool) -> None:
    """Show whether TARGET would be proxied, without contacting upstream.

    Exits 0 when the destination is allowed, 1 when it is denied.
    """
    config = _load_config(whitelist=whitelist)

    try:
        url = extract_target_url(_inbound_target(target), config.allowed_hosts)
        decision = evaluate(url, config)
        result = CheckResult(
            input=target,
            decision="allow",
            url=decision.url,
            host=decision.host,
            resource_key=decision.resource_key,
        )
    except ProxyError as exc:
        result = CheckResult(
            input=target,
            decision="deny",
            status_code=exc.status_code,
            reason=str(exc),
        )

    if json_output:
        click.echo(result.model_dump_json())
    else:
        click.echo(f"{result.decision}: {result.url or target}")
        if result.resource_key:
            click.echo(f"  resource: {result.resource_key}")
        if result.reason:
            click.echo(f"  reason: {result.reason} ({result.status_code})")

    if result.decision != "allow":
        ctx.exit(1)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
