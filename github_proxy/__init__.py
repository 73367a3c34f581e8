"""github-proxy - allow-listed reverse proxy for GitHub hosts."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("github-proxy")
except PackageNotFoundError:
    __version__ = "1.0.0"  # fallback for editable installs / dev
