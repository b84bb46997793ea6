"""
Publisher settings and base URL handling.
"""

import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import List
from urllib.parse import quote, urlencode, urlsplit

from .exceptions import ConfigError

DEFAULT_BASE_URL = "https://cam-push.hertz.page"
DEFAULT_API_PREFIX = "/api/hall/publisher"
DEFAULT_STORE_PATH = Path.home() / ".campush" / "config.json"


def _default_display_name() -> str:
    return platform.node() or "campush"


@dataclass
class PublisherSettings:
    """
    Tunables for a publisher instance.

    ``base_url`` and ``display_name`` are also persisted by the config store;
    the remaining fields only come from code or the command line.
    """
    base_url: str = DEFAULT_BASE_URL
    display_name: str = field(default_factory=_default_display_name)
    api_prefix: str = DEFAULT_API_PREFIX
    request_timeout: float = 12.0
    reconnect_backoff: float = 1.0
    recovery_threshold: int = 2
    store_path: Path = DEFAULT_STORE_PATH


def require_base_url(raw: str) -> str:
    """
    Validate a hub base URL.

    Args:
        raw: URL as entered by the user

    Returns:
        str: The trimmed URL without a trailing slash

    Raises:
        ConfigError: If the URL is empty, not http(s), or has no host
    """
    url = (raw or "").strip()
    if not url:
        raise ConfigError("base URL is empty", config_key="base_url")
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"invalid base URL: {url}", config_key="base_url")
    return url.rstrip("/")


def api_url(base_url: str, api_prefix: str, endpoint: str) -> str:
    """Join base URL, API prefix and endpoint name into a request URL."""
    base = require_base_url(base_url)
    prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
    return f"{base}{prefix}/{endpoint.strip('/')}"


def build_whip_url(base_url: str, path: str, token: str) -> str:
    """
    Build the publish target for a stream.

    The target is ``<base>/internal/hall/whip/<path segments>/whip?token=...``.

    Raises:
        ConfigError: If the base URL is invalid or the path has no segments
    """
    base = require_base_url(base_url)
    segments: List[str] = [s for s in path.split("/") if s]
    if not segments:
        raise ConfigError("stream path is empty", config_key="path")
    quoted = "/".join(quote(s, safe="") for s in segments)
    return f"{base}/internal/hall/whip/{quoted}/whip?{urlencode({'token': token})}"
