"""GitHub integration plugin.

Model tools:
    github_auth_status      - Check whether the project is authenticated
    github_login_token      - Log in with a Personal Access Token
    github_login_device     - Log in with the OAuth device flow
    github_logout           - Remove the project's stored token
    github_list_issues      - List issues of the current repository
    github_get_issue        - Show an issue with its comments
    github_create_issue     - Open a new issue
    github_comment_issue    - Comment on an issue
    github_close_issue      - Close an issue
    github_list_prs         - List pull requests

User commands:
    github-status           - Show authentication status
    github-login [token]    - Log in with a Personal Access Token
    github-logout           - Remove the stored token
    github-issues [state]   - List issues (shared with the model)

Tokens are stored per workspace; see ``token_store``.
"""

import logging
import os
import threading
import webbrowser
from typing import Any, Callable, Dict, List, Optional

from ..base import (
    CommandCompletion,
    CommandParameter,
    OutputCallback,
    UserCommand,
)
from ..types import CancelledException, CancelToken, ToolSchema
from .api import GitHubClient
from .env import load_env_file, resolve_config
from .errors import (
    GitHubIntegrationError,
    NotAuthenticatedError,
    RepoNotFoundError,
    TOKEN_SETTINGS_URL,
)
from .formatting import (
    format_identity,
    format_issue_detail,
    format_issue_list,
    format_pull_list,
    is_pull_request,
)
from .oauth import DeviceVerification
from .repo import RepoInfo, get_repo_info
from .session import LoginFailure, SessionManager, TokenLoginResult
from .token_store import TokenStore
from ...trace import trace as _trace_write

logger = logging.getLogger(__name__)

ISSUE_STATES = ("open", "closed", "all")
CLOSE_REASONS = ("completed", "not_planned")

DEFAULT_ISSUE_LIMIT = 30
DEFAULT_PR_LIMIT = 10

LOGIN_FAILURE_MESSAGES = {
    LoginFailure.NO_TOKEN: "No token provided.",
    LoginFailure.REJECTED: "Invalid token. Check the token and make sure it has the 'repo' scope.",
    LoginFailure.UNREACHABLE: "Could not reach GitHub to verify the token. "
                              "Check your network connection and proxy settings.",
    LoginFailure.API_ERROR: "GitHub could not verify the token right now. Try again later.",
    LoginFailure.STORAGE: "The token is valid but could not be saved to the workspace.",
}


def _login_failure_message(result: TokenLoginResult) -> str:
    return LOGIN_FAILURE_MESSAGES.get(result.reason, "Login failed.")


class GitHubPlugin:
    """Plugin exposing GitHub authentication, issue and pull request tools."""

    def __init__(
        self,
        session_manager: Optional[SessionManager] = None,
        repo_resolver: Callable[[str], Optional[RepoInfo]] = get_repo_info,
    ):
        """Initialize the plugin.

        Args:
            session_manager: Pre-built session manager. When omitted one is
                built from configuration in initialize().
            repo_resolver: Maps a workspace path to its GitHub repository.
        """
        self._sessions = session_manager
        self._repo_resolver = repo_resolver
        self._output_callback: Optional[OutputCallback] = None
        self._workspace_path: Optional[str] = None
        self._open_browser = True
        self._device_cancel: Optional[CancelToken] = None
        self._initialized = False

    @property
    def name(self) -> str:
        return "github"

    def _trace(self, msg: str) -> None:
        _trace_write("GitHubPlugin", msg)

    # ==================== Lifecycle ====================

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional dict with:
                - workspace_path: Project directory (default: current directory)
                - client_id: OAuth App client ID (default: GITHUB_CLIENT_ID)
                - api_url: REST API base URL
                - oauth_url: OAuth host base URL
                - timeout: HTTP timeout in seconds
                - open_browser: Open the verification URL during device
                  login (default: True)
        """
        config = config or {}
        if config.get("workspace_path"):
            self._workspace_path = config["workspace_path"]
        self._open_browser = config.get("open_browser", True)

        if self._sessions is None:
            load_env_file(self._workspace_path)
            self._sessions = SessionManager(resolve_config(config), store=TokenStore())

        self._initialized = True
        self._trace(
            f"initialize: workspace={self._workspace_path}, "
            f"client_id={'set' if self._sessions.config.client_id else 'unset'}"
        )

    def shutdown(self) -> None:
        """Abandon any device login in progress."""
        self.cancel_login()
        self._initialized = False
        self._trace("shutdown")

    def set_workspace_path(self, path: Optional[str]) -> None:
        """Set the project directory tokens and repositories are resolved from."""
        self._workspace_path = path
        self._trace(f"set_workspace_path: {path}")

    def set_output_callback(self, callback: Optional[OutputCallback]) -> None:
        """Set the output callback for real-time output during commands."""
        self._output_callback = callback

    def _emit(self, text: str, mode: str = "write") -> None:
        if self._output_callback:
            self._output_callback(self.name, text, mode)

    def cancel_login(self) -> None:
        """Cancel a device flow login that is waiting for authorization."""
        if self._device_cancel is not None:
            self._device_cancel.cancel()

    # ==================== Helpers ====================

    def _project(self) -> str:
        return self._workspace_path or os.getcwd()

    def _session_manager(self) -> SessionManager:
        if self._sessions is None:
            self.initialize()
        return self._sessions

    def _require_client(self) -> GitHubClient:
        client = self._session_manager().get_authenticated_client(self._project())
        if client is None:
            raise NotAuthenticatedError()
        return client

    def _require_repo(self) -> RepoInfo:
        info = self._repo_resolver(self._project())
        if info is None:
            raise RepoNotFoundError(self._project())
        return info

    @staticmethod
    def _issue_number(args: Dict[str, Any]) -> int:
        try:
            return int(args["issue_number"])
        except (KeyError, TypeError, ValueError):
            raise ValueError("issue_number must be an integer") from None

    @staticmethod
    def _limit(args: Dict[str, Any], default: int) -> int:
        try:
            limit = int(args.get("limit") or default)
        except (TypeError, ValueError):
            return default
        return max(1, min(limit, 100))

    # ==================== Tool schemas ====================

    def get_tool_schemas(self) -> List[ToolSchema]:
        """Return the GitHub tool schemas."""
        return [
            ToolSchema(
                name="github_auth_status",
                description="Checks whether the user is authenticated with GitHub. "
                            "Run this before other GitHub tools.",
                parameters={"type": "object", "properties": {}, "required": []},
                category="communication",
                discoverability="core",
            ),
            ToolSchema(
                name="github_login_token",
                description="Authenticates with GitHub using a Personal Access Token. "
                            f"The user should create a token at {TOKEN_SETTINGS_URL} "
                            "with 'repo' scope.",
                parameters={
                    "type": "object",
                    "properties": {
                        "token": {
                            "type": "string",
                            "description": "GitHub Personal Access Token "
                                           "(starts with ghp_ or github_pat_)",
                        },
                    },
                    "required": ["token"],
                },
                category="communication",
            ),
            ToolSchema(
                name="github_login_device",
                description="Authenticates with GitHub using the OAuth device flow. "
                            "Shows a URL and code for the user to enter in a browser, "
                            "then waits for authorization. Requires a configured OAuth "
                            "App client ID (GITHUB_CLIENT_ID).",
                parameters={"type": "object", "properties": {}, "required": []},
                category="communication",
            ),
            ToolSchema(
                name="github_logout",
                description="Removes the stored GitHub authentication token.",
                parameters={"type": "object", "properties": {}, "required": []},
                category="communication",
            ),
            ToolSchema(
                name="github_list_issues",
                description="Lists issues in the current repository. Requires GitHub "
                            "authentication - will suggest login if not authenticated.",
                parameters={
                    "type": "object",
                    "properties": {
                        "state": {
                            "type": "string",
                            "enum": list(ISSUE_STATES),
                            "description": "Filter by state (default: open)",
                        },
                        "labels": {
                            "type": "string",
                            "description": "Comma-separated list of label names to filter by",
                        },
                        "assignee": {
                            "type": "string",
                            "description": "Filter by assignee username",
                        },
                        "limit": {
                            "type": "integer",
                            "description": f"Maximum number of issues to return "
                                           f"(default: {DEFAULT_ISSUE_LIMIT})",
                        },
                    },
                    "required": [],
                },
                category="communication",
            ),
            ToolSchema(
                name="github_get_issue",
                description="Fetches the full details and comments of a specific GitHub issue.",
                parameters={
                    "type": "object",
                    "properties": {
                        "issue_number": {
                            "type": "integer",
                            "description": "The issue number to fetch",
                        },
                    },
                    "required": ["issue_number"],
                },
                category="communication",
            ),
            ToolSchema(
                name="github_create_issue",
                description="Creates a new issue in the current GitHub repository.",
                parameters={
                    "type": "object",
                    "properties": {
                        "title": {"type": "string", "description": "Title of the issue"},
                        "body": {
                            "type": "string",
                            "description": "Body/description of the issue (Markdown supported)",
                        },
                        "labels": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "List of label names to add",
                        },
                        "assignees": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "List of usernames to assign",
                        },
                    },
                    "required": ["title"],
                },
                category="communication",
            ),
            ToolSchema(
                name="github_comment_issue",
                description="Adds a comment to an existing GitHub issue.",
                parameters={
                    "type": "object",
                    "properties": {
                        "issue_number": {
                            "type": "integer",
                            "description": "The issue number to comment on",
                        },
                        "body": {
                            "type": "string",
                            "description": "The comment text (Markdown supported)",
                        },
                    },
                    "required": ["issue_number", "body"],
                },
                category="communication",
            ),
            ToolSchema(
                name="github_close_issue",
                description="Closes a GitHub issue.",
                parameters={
                    "type": "object",
                    "properties": {
                        "issue_number": {
                            "type": "integer",
                            "description": "The issue number to close",
                        },
                        "reason": {
                            "type": "string",
                            "enum": list(CLOSE_REASONS),
                            "description": "Reason for closing (default: completed)",
                        },
                    },
                    "required": ["issue_number"],
                },
                category="communication",
            ),
            ToolSchema(
                name="github_list_prs",
                description="Lists pull requests in the current GitHub repository.",
                parameters={
                    "type": "object",
                    "properties": {
                        "state": {
                            "type": "string",
                            "enum": list(ISSUE_STATES),
                            "description": "Filter by state (default: open)",
                        },
                        "limit": {
                            "type": "integer",
                            "description": f"Maximum number of PRs to return "
                                           f"(default: {DEFAULT_PR_LIMIT})",
                        },
                    },
                    "required": [],
                },
                category="communication",
            ),
        ]

    def get_executors(self) -> Dict[str, Callable[[Dict[str, Any]], Any]]:
        """Return the executor mapping for tools and user commands."""
        executors: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "github_auth_status": self._execute_auth_status,
            "github_login_token": self._execute_login_token,
            "github_login_device": self._execute_login_device,
            "github_logout": self._execute_logout,
            "github_list_issues": self._guarded(self._execute_list_issues),
            "github_get_issue": self._guarded(self._execute_get_issue),
            "github_create_issue": self._guarded(self._execute_create_issue),
            "github_comment_issue": self._guarded(self._execute_comment_issue),
            "github_close_issue": self._guarded(self._execute_close_issue),
            "github_list_prs": self._guarded(self._execute_list_prs),
        }
        for command in self.get_user_commands():
            executors[command.name] = (
                lambda args, name=command.name: self.execute_user_command(name, args)
            )
        return executors

    def get_system_instructions(self) -> Optional[str]:
        return (
            "You have access to GitHub tools for the repository in the current "
            "workspace (resolved from the `origin` git remote).\n\n"
            "- Call `github_auth_status` first. If not authenticated, ask the user "
            "for a Personal Access Token (`github_login_token`) or start "
            "`github_login_device` and relay the URL and code it prints.\n"
            "- Issues: `github_list_issues`, `github_get_issue`, "
            "`github_create_issue`, `github_comment_issue`, `github_close_issue`.\n"
            "- Pull requests: `github_list_prs`.\n"
            "Never echo a token back to the user."
        )

    def get_auto_approved_tools(self) -> List[str]:
        """Read-only tools and user commands need no permission prompt."""
        return [
            "github_auth_status",
            "github_list_issues",
            "github_get_issue",
            "github_list_prs",
            "github-status",
            "github-login",
            "github-logout",
            "github-issues",
        ]

    # ==================== Tool executors ====================

    def _guarded(
        self, func: Callable[[Dict[str, Any]], Dict[str, Any]]
    ) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
        """Turn plugin errors into error results the model can act on."""
        def wrapper(args: Dict[str, Any]) -> Dict[str, Any]:
            try:
                return func(args)
            except (GitHubIntegrationError, ValueError) as exc:
                self._trace(f"{func.__name__} failed: {exc}")
                return {"error": str(exc)}
        wrapper.__name__ = func.__name__
        return wrapper

    def _execute_auth_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        client = self._session_manager().get_authenticated_client(self._project())
        if client is None:
            return {"authenticated": False, "result": str(NotAuthenticatedError())}
        return {
            "authenticated": True,
            "login": client.identity.login,
            "result": f"Authenticated as {format_identity(client.identity)}",
        }

    def _execute_login_token(self, args: Dict[str, Any]) -> Dict[str, Any]:
        result = self._session_manager().login_with_token(self._project(), args.get("token", ""))
        if result:
            return {
                "authenticated": True,
                "login": result.identity.login,
                "result": f"Successfully authenticated as {result.identity.login}! "
                          "Token saved. All GitHub tools are now available.",
            }
        return {
            "authenticated": False,
            "error": _login_failure_message(result),
            "detail": result.error,
        }

    def _execute_login_device(self, args: Dict[str, Any]) -> Dict[str, Any]:
        verification: List[DeviceVerification] = []

        def on_verification(info: DeviceVerification) -> None:
            verification.append(info)
            self._emit(
                "To complete login:\n\n"
                f"  1. Open: {info.verification_uri}\n"
                f"  2. Enter code: {info.user_code}\n\n"
                "Waiting for authorization...\n"
            )
            if self._open_browser:
                threading.Thread(
                    target=webbrowser.open,
                    args=(info.verification_uri,),
                    daemon=True,
                ).start()

        self._device_cancel = CancelToken()
        try:
            self._session_manager().start_device_flow_login(
                self._project(),
                on_verification,
                cancel_token=self._device_cancel,
                on_message=lambda msg: logger.debug("device flow: %s", msg),
            )
        except (GitHubIntegrationError, CancelledException) as exc:
            return {
                "authenticated": False,
                "error": f"Device flow login failed: {exc}",
                "hint": "Alternative: use github_login_token with a Personal Access "
                        f"Token instead. Create one at: {TOKEN_SETTINGS_URL}",
            }
        finally:
            self._device_cancel = None

        result: Dict[str, Any] = {
            "authenticated": True,
            "result": "Authentication successful! Token saved.",
        }
        if verification:
            result["verification_uri"] = verification[0].verification_uri
            result["user_code"] = verification[0].user_code
        return result

    def _execute_logout(self, args: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self._session_manager().logout(self._project())
        except GitHubIntegrationError as exc:
            return {"error": str(exc)}
        return {"result": "Logged out. GitHub token has been removed."}

    def _execute_list_issues(self, args: Dict[str, Any]) -> Dict[str, Any]:
        client = self._require_client()
        repo = self._require_repo()
        state = args.get("state") or "open"
        if state not in ISSUE_STATES:
            raise ValueError(f"state must be one of {', '.join(ISSUE_STATES)}")

        issues = client.list_issues(
            repo.owner,
            repo.repo,
            state=state,
            labels=args.get("labels"),
            assignee=args.get("assignee"),
            per_page=self._limit(args, DEFAULT_ISSUE_LIMIT),
        )
        return {"result": format_issue_list(issues)}

    def _execute_get_issue(self, args: Dict[str, Any]) -> Dict[str, Any]:
        number = self._issue_number(args)
        client = self._require_client()
        repo = self._require_repo()

        issue = client.get_issue(repo.owner, repo.repo, number)
        comments = client.list_issue_comments(repo.owner, repo.repo, number)
        return {"result": format_issue_detail(issue, comments)}

    def _execute_create_issue(self, args: Dict[str, Any]) -> Dict[str, Any]:
        title = (args.get("title") or "").strip()
        if not title:
            raise ValueError("title is required")
        client = self._require_client()
        repo = self._require_repo()

        issue = client.create_issue(
            repo.owner,
            repo.repo,
            title,
            body=args.get("body"),
            labels=args.get("labels"),
            assignees=args.get("assignees"),
        )
        return {
            "number": issue["number"],
            "url": issue.get("html_url"),
            "result": f"Issue created: #{issue['number']} - {issue.get('title', title)}\n"
                      f"{issue.get('html_url', '')}",
        }

    def _execute_comment_issue(self, args: Dict[str, Any]) -> Dict[str, Any]:
        number = self._issue_number(args)
        body = args.get("body") or ""
        if not body.strip():
            raise ValueError("body is required")
        client = self._require_client()
        repo = self._require_repo()

        comment = client.create_issue_comment(repo.owner, repo.repo, number, body)
        return {
            "url": comment.get("html_url"),
            "result": f"Comment added to issue #{number}\n{comment.get('html_url', '')}",
        }

    def _execute_close_issue(self, args: Dict[str, Any]) -> Dict[str, Any]:
        number = self._issue_number(args)
        reason = args.get("reason") or "completed"
        if reason not in CLOSE_REASONS:
            raise ValueError(f"reason must be one of {', '.join(CLOSE_REASONS)}")
        client = self._require_client()
        repo = self._require_repo()

        client.close_issue(repo.owner, repo.repo, number, reason=reason)
        return {"result": f"Issue #{number} closed ({reason})."}

    def _execute_list_prs(self, args: Dict[str, Any]) -> Dict[str, Any]:
        client = self._require_client()
        repo = self._require_repo()
        state = args.get("state") or "open"
        if state not in ISSUE_STATES:
            raise ValueError(f"state must be one of {', '.join(ISSUE_STATES)}")

        pulls = client.list_pulls(
            repo.owner,
            repo.repo,
            state=state,
            per_page=self._limit(args, DEFAULT_PR_LIMIT),
        )
        return {"result": format_pull_list(pulls)}

    # ==================== User commands ====================

    def get_user_commands(self) -> List[UserCommand]:
        """Return user-facing commands for authentication and issues."""
        return [
            UserCommand(
                name="github-status",
                description="Check GitHub authentication status",
                share_with_model=False,
            ),
            UserCommand(
                name="github-login",
                description="Log in to GitHub with a Personal Access Token",
                share_with_model=False,
                parameters=[
                    CommandParameter(
                        name="token",
                        description="Personal Access Token (ghp_... or github_pat_...)",
                        required=False,
                        capture_rest=True,
                    ),
                ],
            ),
            UserCommand(
                name="github-logout",
                description="Log out from GitHub",
                share_with_model=False,
            ),
            UserCommand(
                name="github-issues",
                description="List GitHub issues (usage: github-issues [open|closed|all])",
                share_with_model=True,
                parameters=[
                    CommandParameter(
                        name="state",
                        description="open, closed or all (default: open)",
                        required=False,
                    ),
                ],
            ),
        ]

    def get_command_completions(
        self, command: str, args: List[str]
    ) -> List[CommandCompletion]:
        """Provide autocompletion for command arguments."""
        if command != "github-issues" or len(args) > 1:
            return []

        states = [
            CommandCompletion("open", "Open issues"),
            CommandCompletion("closed", "Closed issues"),
            CommandCompletion("all", "All issues"),
        ]
        if not args:
            return states
        partial = args[0].lower()
        return [s for s in states if s.value.startswith(partial)]

    def execute_user_command(self, command: str, args: Dict[str, Any]) -> str:
        """Execute a user command."""
        if command == "github-status":
            return self._cmd_status()
        if command == "github-login":
            return self._cmd_login(args)
        if command == "github-logout":
            return self._cmd_logout()
        if command == "github-issues":
            return self._cmd_issues(args)
        return f"Unknown command: {command}"

    def _cmd_status(self) -> str:
        identity = self._session_manager().get_identity(self._project())
        if identity:
            self._emit(f"Authenticated as {format_identity(identity)}\n")
        else:
            self._emit("Not authenticated. Use github-login to log in.\n")
        return ""

    def _cmd_login(self, args: Dict[str, Any]) -> str:
        token = (args.get("token") or "").strip()
        if not token:
            self._emit(
                "Usage: github-login <token>\n\n"
                f"Create a Personal Access Token with 'repo' scope at {TOKEN_SETTINGS_URL}\n"
            )
            return ""

        result = self._session_manager().login_with_token(self._project(), token)
        if result:
            self._emit(f"Logged in as {result.identity.login}!\n")
        else:
            self._emit(f"{_login_failure_message(result)}\n")
            if result.error:
                self._emit(f"  {result.error}\n", mode="append")
        return ""

    def _cmd_logout(self) -> str:
        try:
            removed = self._session_manager().logout(self._project())
        except GitHubIntegrationError as exc:
            self._emit(f"Failed to remove token: {exc}\n")
            return ""
        if removed:
            self._emit("Logged out from GitHub.\n")
        else:
            self._emit("No GitHub token stored. Already logged out.\n")
        return ""

    def _cmd_issues(self, args: Dict[str, Any]) -> str:
        state = (args.get("state") or "open").lower()
        if state not in ISSUE_STATES:
            self._emit(f"Unknown state '{state}'. Use one of: {', '.join(ISSUE_STATES)}\n")
            return ""

        client = self._session_manager().get_authenticated_client(self._project())
        if client is None:
            self._emit("Not authenticated. Use github-login first.\n")
            return ""

        repo = self._repo_resolver(self._project())
        if repo is None:
            self._emit(
                "No GitHub remote found. Make sure this is a git repo with a GitHub remote.\n"
            )
            return ""

        try:
            issues = client.list_issues(
                repo.owner, repo.repo, state=state, per_page=DEFAULT_ISSUE_LIMIT
            )
        except GitHubIntegrationError as exc:
            self._emit(f"Failed to list issues: {exc}\n")
            return ""

        issues = [i for i in issues if not is_pull_request(i)]
        if not issues:
            self._emit(f"No {state} issues found.\n")
            return ""
        text = format_issue_list(issues, show_assignee=False)
        return f"Here are the {state} GitHub issues:\n\n{text}"


def create_plugin() -> GitHubPlugin:
    """Factory function for plugin discovery."""
    return GitHubPlugin()
