"""WSGI entrypoint for production servers.

    gunicorn --workers 4 --bind 0.0.0.0:8080 github_proxy.wsgi:app

Configuration is read from the environment once, at import time.
"""

from github_proxy.app import create_app
from github_proxy.logging_config import setup_logging

setup_logging()
app = create_app()
