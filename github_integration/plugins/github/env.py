"""Configuration resolution for the GitHub plugin.

Settings come from three layers:
1. Explicit config passed to the plugin's initialize()
2. Environment variables (after loading the workspace's .env file)
3. Defaults

The resolved GitHubConfig is handed to the SessionManager at construction,
so nothing downstream reads the process environment at call time.

Environment variables:
- GITHUB_CLIENT_ID: OAuth App client ID used for the device flow.
  Create an OAuth App at https://github.com/settings/applications/new
- GITHUB_INTEGRATION_API_URL: REST API base (GitHub Enterprise Server)
- GITHUB_INTEGRATION_OAUTH_URL: OAuth host base (GitHub Enterprise Server)
- GITHUB_INTEGRATION_TIMEOUT: HTTP timeout in seconds
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ============================================================
# Environment Variable Names
# ============================================================

ENV_GITHUB_CLIENT_ID = "GITHUB_CLIENT_ID"
ENV_API_URL = "GITHUB_INTEGRATION_API_URL"
ENV_OAUTH_URL = "GITHUB_INTEGRATION_OAUTH_URL"
ENV_TIMEOUT = "GITHUB_INTEGRATION_TIMEOUT"

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_OAUTH_URL = "https://github.com"
DEFAULT_TIMEOUT = 30.0

# Full repository access, required for issue and pull request operations
DEFAULT_SCOPES: Tuple[str, ...] = ("repo",)


@dataclass(frozen=True)
class GitHubConfig:
    """Resolved settings for talking to GitHub.

    Attributes:
        client_id: OAuth App client ID for the device flow. Empty when not
            configured; the device flow refuses to start in that case.
        api_url: REST API base URL.
        oauth_url: Base URL hosting /login/device/code and
            /login/oauth/access_token.
        scopes: OAuth scopes requested by the device flow.
        timeout: Per-request HTTP timeout in seconds.
    """
    client_id: str = ""
    api_url: str = DEFAULT_API_URL
    oauth_url: str = DEFAULT_OAUTH_URL
    scopes: Tuple[str, ...] = DEFAULT_SCOPES
    timeout: float = DEFAULT_TIMEOUT

    @property
    def scope(self) -> str:
        """Scopes as the space-separated string GitHub expects."""
        return " ".join(self.scopes)


def load_env_file(workspace_path: Optional[str] = None) -> bool:
    """Load a .env file without overriding variables already set.

    Looks in the workspace root when given, otherwise lets python-dotenv
    search upward from the current directory.

    Returns:
        True if a file was found and loaded.
    """
    if workspace_path:
        env_file = Path(workspace_path) / ".env"
        if not env_file.is_file():
            return False
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


def _resolve_timeout(raw: Any) -> float:
    try:
        timeout = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid GitHub timeout %r, using %s", raw, DEFAULT_TIMEOUT)
        return DEFAULT_TIMEOUT
    if timeout <= 0:
        logger.warning("Non-positive GitHub timeout %r, using %s", raw, DEFAULT_TIMEOUT)
        return DEFAULT_TIMEOUT
    return timeout


def resolve_config(config: Optional[Dict[str, Any]] = None) -> GitHubConfig:
    """Build a GitHubConfig from explicit config and the environment.

    Args:
        config: Optional plugin config with keys client_id, api_url,
            oauth_url, scopes, timeout. Explicit values win over environment.

    Returns:
        The resolved configuration.
    """
    config = config or {}

    client_id = config.get("client_id") or os.environ.get(ENV_GITHUB_CLIENT_ID, "")
    api_url = config.get("api_url") or os.environ.get(ENV_API_URL) or DEFAULT_API_URL
    oauth_url = config.get("oauth_url") or os.environ.get(ENV_OAUTH_URL) or DEFAULT_OAUTH_URL

    scopes = config.get("scopes") or DEFAULT_SCOPES
    if isinstance(scopes, str):
        scopes = scopes.split()

    raw_timeout = config.get("timeout", os.environ.get(ENV_TIMEOUT))
    timeout = DEFAULT_TIMEOUT if raw_timeout is None else _resolve_timeout(raw_timeout)

    return GitHubConfig(
        client_id=client_id.strip(),
        api_url=api_url.rstrip("/"),
        oauth_url=oauth_url.rstrip("/"),
        scopes=tuple(scopes),
        timeout=timeout,
    )
