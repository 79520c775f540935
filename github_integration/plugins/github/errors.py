"""Error types for the GitHub plugin.

These exceptions carry actionable guidance so the tool and command layer can
show them to the user as-is.
"""

from pathlib import Path
from typing import List, Optional, Union

TOKEN_SETTINGS_URL = "https://github.com/settings/tokens/new"
OAUTH_APP_URL = "https://github.com/settings/applications/new"


class GitHubIntegrationError(Exception):
    """Base class for GitHub plugin errors."""
    pass


class NotAuthenticatedError(GitHubIntegrationError):
    """No valid token is stored for the project.

    Raised by operations that need an authenticated client when the session
    manager reports the project as unauthenticated.
    """

    def __init__(self, suggestion: Optional[str] = None):
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = ["Not authenticated with GitHub.", ""]
        if self.suggestion:
            lines.append(self.suggestion)
            return "\n".join(lines)
        lines.extend(self._default_suggestions())
        return "\n".join(lines)

    def _default_suggestions(self) -> List[str]:
        return [
            "To log in, use one of these tools:",
            "  - github_login_token: paste a Personal Access Token (simplest)",
            "  - github_login_device: browser-based OAuth device flow",
            "",
            "To create a Personal Access Token:",
            f"  1. Go to {TOKEN_SETTINGS_URL}",
            "  2. Select scopes: 'repo' (full access to repositories)",
            "  3. Generate and copy the token",
            "  4. Use the github_login_token tool with the token",
        ]


class RepoNotFoundError(GitHubIntegrationError):
    """The project directory has no usable GitHub remote."""

    def __init__(self, cwd: Optional[str] = None):
        self.cwd = cwd
        super().__init__(
            "Could not determine GitHub repository. Make sure this directory is "
            "a git repo with a GitHub remote "
            "(`git remote add origin https://github.com/owner/repo.git`)."
        )


class TokenStorageError(GitHubIntegrationError):
    """The token file could not be written or removed."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Could not update token file {self.path}: {reason}")


class GitHubAPIError(GitHubIntegrationError):
    """A GitHub REST call failed.

    Attributes:
        status_code: HTTP status, or None for transport failures.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"GitHub request failed: {message}")
        else:
            super().__init__(f"GitHub API error (HTTP {status_code}): {message}")

    @property
    def is_auth_error(self) -> bool:
        """True for responses that mean the token itself was rejected."""
        return self.status_code == 401


class DeviceFlowError(GitHubIntegrationError):
    """The OAuth device flow could not be completed."""
    pass


class ClientIdMissingError(DeviceFlowError):
    """No OAuth App client ID is configured for the device flow."""

    def __init__(self):
        super().__init__(
            "GITHUB_CLIENT_ID is not set. Create an OAuth App at "
            f"{OAUTH_APP_URL} (enable Device Flow) and set GITHUB_CLIENT_ID "
            "in the environment or the project's .env file."
        )


class DeviceFlowDeniedError(DeviceFlowError):
    """The user declined the authorization request."""

    def __init__(self):
        super().__init__("Authorization denied. The user cancelled the authorization.")


class DeviceFlowExpiredError(DeviceFlowError):
    """The device code expired before the user completed authorization."""

    def __init__(self):
        super().__init__("Device code expired. Please start the login again.")
