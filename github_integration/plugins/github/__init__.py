"""GitHub integration plugin.

Provides model tools and user commands for working with the GitHub
repository of the current workspace: authentication (Personal Access Token
or OAuth device flow), issues, and pull requests.

Tokens are stored per project under ``<workspace>/.github_integration/``.

Commands:
    github-status            - Show authentication status
    github-login [token]     - Log in with a Personal Access Token
    github-logout            - Remove the stored token
    github-issues [state]    - List issues of the current repository
"""

# Plugin kind for registry discovery
PLUGIN_KIND = "tool"

from .plugin import GitHubPlugin, create_plugin
from .session import LoginFailure, SessionManager, TokenLoginResult
from .token_store import LoadStatus, TokenLoadResult, TokenStore

__all__ = [
    "GitHubPlugin",
    "create_plugin",
    "PLUGIN_KIND",
    "LoginFailure",
    "SessionManager",
    "TokenLoginResult",
    "TokenStore",
    "TokenLoadResult",
    "LoadStatus",
]
