"""
Top-level pytest conftest.py -- shared fixtures for proxy tests.

Provides:
    make_config   - build a ProxyConfig from whitelist entries and overrides
    make_upstream - build a mock requests.Response for the upstream
    session       - mock requests.Session whose request() returns an upstream
    app / client  - Flask application and test client wired to the mock session
"""

from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from github_proxy.app import create_app
from github_proxy.config import ProxyConfig


@pytest.fixture
def make_config():
    """Return a factory for ProxyConfig objects.

    Usage::

        config = make_config(["owner/repo"], redirect_mode="follow")
    """
    def _make(whitelist=(), **kwargs):
        return ProxyConfig.with_whitelist(whitelist, **kwargs)

    return _make


@pytest.fixture
def make_upstream():
    """Return a factory for mock upstream responses.

    The mock mimics the parts of requests.Response the proxy uses:
    status_code, reason, headers, raw.headers, url, iter_content() and
    close(). ``headers`` may be a dict or a list of (name, value) pairs;
    repeated names are comma-joined in ``headers`` the way requests does,
    and kept line by line in ``raw.headers``.
    """
    def _make(status_code=200, body=b"", headers=None, reason="OK", url="https://github.com/"):
        pairs = list(headers.items()) if isinstance(headers, dict) else list(headers or [])
        joined = CaseInsensitiveDict()
        for name, value in pairs:
            joined[name] = f"{joined[name]}, {value}" if name in joined else value

        response = MagicMock()
        response.status_code = status_code
        response.reason = reason
        response.url = url
        response.headers = joined
        response.raw.headers.items.return_value = pairs
        chunks = [body] if isinstance(body, bytes) else list(body)
        response.iter_content = MagicMock(return_value=iter(chunks))
        response.close = MagicMock()
        return response

    return _make


@pytest.fixture
def session(make_upstream):
    """Mock upstream session returning a plain 200 response by default."""
    mock_session = MagicMock(spec=requests.Session)
    mock_session.request.return_value = make_upstream(body=b"upstream body")
    return mock_session


@pytest.fixture
def config(make_config):
    """Default configuration: no whitelist, rewrite redirects, query links."""
    return make_config()


@pytest.fixture
def app(config, session):
    """Create Flask app wired to the mock session."""
    application = create_app(config, session=session)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
