"""Tests for the GitHub plugin's tools and user commands."""

from unittest.mock import MagicMock, patch

import pytest

from ..errors import DeviceFlowExpiredError, GitHubAPIError, TokenStorageError
from ..oauth import DeviceVerification
from ..plugin import GitHubPlugin, create_plugin
from ..repo import RepoInfo
from ...base import CommandCompletion, ToolPlugin
from .conftest import VALID_TOKEN

REPO = RepoInfo("octocat", "hello-world")


@pytest.fixture
def output():
    return MagicMock()


@pytest.fixture
def plugin(sessions, project, output):
    p = GitHubPlugin(session_manager=sessions, repo_resolver=lambda cwd: REPO)
    p.initialize({"workspace_path": str(project), "open_browser": False})
    p.set_output_callback(output)
    return p


@pytest.fixture
def logged_in(plugin, store, project):
    store.save(project, VALID_TOKEN)
    return plugin


@pytest.fixture
def client(logged_in, sessions):
    """Shared mock behind the REST calls of every client the plugin is handed."""
    api = MagicMock()
    make_client = sessions._client_factory

    def factory(token):
        c = make_client(token)
        for method in ("list_issues", "get_issue", "list_issue_comments", "create_issue",
                       "create_issue_comment", "close_issue", "list_pulls"):
            setattr(c, method, getattr(api, method))
        return c

    sessions._client_factory = factory
    return api


def _written(output):
    return "".join(call[0][1] for call in output.call_args_list)


class TestPluginBasics:

    def test_create_plugin(self):
        plugin = create_plugin()
        assert isinstance(plugin, GitHubPlugin)
        assert plugin.name == "github"

    def test_implements_protocol(self, plugin):
        assert isinstance(plugin, ToolPlugin)

    def test_tool_schemas(self, plugin):
        names = [s.name for s in plugin.get_tool_schemas()]
        assert names == [
            "github_auth_status",
            "github_login_token",
            "github_login_device",
            "github_logout",
            "github_list_issues",
            "github_get_issue",
            "github_create_issue",
            "github_comment_issue",
            "github_close_issue",
            "github_list_prs",
        ]

    def test_every_tool_has_an_executor(self, plugin):
        executors = plugin.get_executors()
        for schema in plugin.get_tool_schemas():
            assert schema.name in executors

    def test_close_reason_enum(self, plugin):
        schema = next(s for s in plugin.get_tool_schemas() if s.name == "github_close_issue")
        assert schema.parameters["properties"]["reason"]["enum"] == ["completed", "not_planned"]

    def test_auto_approved_are_read_only(self, plugin):
        approved = plugin.get_auto_approved_tools()
        assert "github_list_issues" in approved
        assert "github_create_issue" not in approved
        assert "github_close_issue" not in approved

    def test_system_instructions_mention_status_tool(self, plugin):
        assert "github_auth_status" in plugin.get_system_instructions()

    def test_initialize_builds_session_manager(self, project, monkeypatch):
        monkeypatch.setenv("GITHUB_CLIENT_ID", "Iv1.env")
        plugin = GitHubPlugin()

        plugin.initialize({"workspace_path": str(project)})

        assert plugin._sessions.config.client_id == "Iv1.env"


class TestAuthTools:

    def test_status_unauthenticated(self, plugin):
        result = plugin.get_executors()["github_auth_status"]({})
        assert result["authenticated"] is False
        assert "github_login_token" in result["result"]

    def test_status_authenticated(self, logged_in):
        result = logged_in.get_executors()["github_auth_status"]({})
        assert result["authenticated"] is True
        assert result["login"] == "octocat"

    def test_login_token_success(self, plugin, store, project):
        result = plugin.get_executors()["github_login_token"]({"token": VALID_TOKEN})

        assert result["authenticated"] is True
        assert "octocat" in result["result"]
        assert store.load(project) == VALID_TOKEN

    def test_login_token_invalid(self, plugin, store, project):
        result = plugin.get_executors()["github_login_token"]({"token": "ghp_bogus"})

        assert result["authenticated"] is False
        assert "Invalid token" in result["error"]
        assert store.load(project) is None

    def test_login_token_unreachable(self, plugin, sessions, store, project):
        client = MagicMock()
        client.get_authenticated_user.side_effect = GitHubAPIError("Connection refused")
        sessions._client_factory = lambda token: client

        result = plugin.get_executors()["github_login_token"]({"token": VALID_TOKEN})

        assert "Could not reach GitHub" in result["error"]
        assert "Invalid token" not in result["error"]
        assert "Connection refused" in result["detail"]

    def test_login_token_valid_but_not_saved(self, plugin, store, project):
        with patch.object(store, "save", side_effect=TokenStorageError("x", "read-only")):
            result = plugin.get_executors()["github_login_token"]({"token": VALID_TOKEN})

        assert result["authenticated"] is False
        assert "could not be saved" in result["error"]
        assert "read-only" in result["detail"]

    def test_login_device_success(self, plugin, sessions, output):
        def fake_login(project, on_verification, cancel_token=None, on_message=None):
            on_verification(DeviceVerification("https://github.com/login/device", "ABCD-1234"))
            return "gho_device"

        with patch.object(sessions, "start_device_flow_login", side_effect=fake_login):
            result = plugin.get_executors()["github_login_device"]({})

        assert result["authenticated"] is True
        assert result["user_code"] == "ABCD-1234"
        assert "ABCD-1234" in _written(output)

    def test_login_device_failure(self, plugin, sessions):
        with patch.object(sessions, "start_device_flow_login",
                          side_effect=DeviceFlowExpiredError()):
            result = plugin.get_executors()["github_login_device"]({})

        assert result["authenticated"] is False
        assert "expired" in result["error"]
        assert "github_login_token" in result["hint"]

    def test_login_device_missing_client_id(self, project):
        from ..env import GitHubConfig
        from ..session import SessionManager

        plugin = GitHubPlugin(session_manager=SessionManager(GitHubConfig()))
        plugin.initialize({"workspace_path": str(project)})

        result = plugin.get_executors()["github_login_device"]({})

        assert result["authenticated"] is False
        assert "GITHUB_CLIENT_ID" in result["error"]

    def test_logout(self, logged_in, store, project):
        result = logged_in.get_executors()["github_logout"]({})

        assert "Logged out" in result["result"]
        assert store.load(project) is None


class TestIssueTools:

    def test_requires_authentication(self, plugin):
        result = plugin.get_executors()["github_list_issues"]({})
        assert "Not authenticated" in result["error"]

    def test_requires_repo(self, sessions, store, project):
        store.save(project, VALID_TOKEN)
        plugin = GitHubPlugin(session_manager=sessions, repo_resolver=lambda cwd: None)
        plugin.initialize({"workspace_path": str(project)})

        result = plugin.get_executors()["github_list_issues"]({})

        assert "Could not determine GitHub repository" in result["error"]

    def test_list_issues(self, logged_in, client):
        client.list_issues.return_value = [
            {"number": 1, "title": "Bug", "state": "open", "labels": []},
            {"number": 2, "title": "PR", "state": "open", "pull_request": {"url": "x"}},
        ]

        result = logged_in.get_executors()["github_list_issues"](
            {"state": "all", "labels": "bug", "limit": 5}
        )

        assert result["result"] == "#1 [open] Bug  (unassigned)"
        client.list_issues.assert_called_once_with(
            "octocat", "hello-world", state="all", labels="bug", assignee=None, per_page=5
        )

    def test_list_issues_defaults(self, logged_in, client):
        client.list_issues.return_value = []

        result = logged_in.get_executors()["github_list_issues"]({})

        assert result["result"] == "No issues found."
        kwargs = client.list_issues.call_args[1]
        assert kwargs["state"] == "open"
        assert kwargs["per_page"] == 30

    def test_list_issues_bad_state(self, logged_in, client):
        result = logged_in.get_executors()["github_list_issues"]({"state": "stale"})
        assert "state must be one of" in result["error"]

    def test_get_issue(self, logged_in, client):
        client.get_issue.return_value = {"number": 7, "title": "Crash", "state": "open"}
        client.list_issue_comments.return_value = []

        result = logged_in.get_executors()["github_get_issue"]({"issue_number": "7"})

        assert result["result"].startswith("# #7: Crash")
        client.get_issue.assert_called_once_with("octocat", "hello-world", 7)

    def test_get_issue_bad_number(self, logged_in):
        result = logged_in.get_executors()["github_get_issue"]({"issue_number": "seven"})
        assert result == {"error": "issue_number must be an integer"}

    def test_create_issue(self, logged_in, client):
        client.create_issue.return_value = {
            "number": 12, "title": "New", "html_url": "https://github.com/o/r/issues/12",
        }

        result = logged_in.get_executors()["github_create_issue"](
            {"title": "New", "body": "Details", "labels": ["bug"]}
        )

        assert result["number"] == 12
        assert "#12" in result["result"]
        client.create_issue.assert_called_once_with(
            "octocat", "hello-world", "New", body="Details", labels=["bug"], assignees=None
        )

    def test_create_issue_requires_title(self, logged_in):
        result = logged_in.get_executors()["github_create_issue"]({"title": "  "})
        assert result == {"error": "title is required"}

    def test_comment_issue(self, logged_in, client):
        client.create_issue_comment.return_value = {"html_url": "https://github.com/c/1"}

        result = logged_in.get_executors()["github_comment_issue"](
            {"issue_number": 3, "body": "Thanks"}
        )

        assert "issue #3" in result["result"]
        client.create_issue_comment.assert_called_once_with("octocat", "hello-world", 3, "Thanks")

    def test_close_issue(self, logged_in, client):
        client.close_issue.return_value = {}

        result = logged_in.get_executors()["github_close_issue"](
            {"issue_number": 3, "reason": "not_planned"}
        )

        assert result["result"] == "Issue #3 closed (not_planned)."
        client.close_issue.assert_called_once_with(
            "octocat", "hello-world", 3, reason="not_planned"
        )

    def test_close_issue_bad_reason(self, logged_in):
        result = logged_in.get_executors()["github_close_issue"](
            {"issue_number": 3, "reason": "duplicate"}
        )
        assert "reason must be one of" in result["error"]

    def test_api_error_is_returned(self, logged_in, client):
        client.get_issue.side_effect = GitHubAPIError("Not Found", status_code=404)

        result = logged_in.get_executors()["github_get_issue"]({"issue_number": 999})

        assert "HTTP 404" in result["error"]

    def test_list_prs(self, logged_in, client):
        client.list_pulls.return_value = []

        result = logged_in.get_executors()["github_list_prs"]({"state": "closed"})

        assert result["result"] == "No pull requests found."
        client.list_pulls.assert_called_once_with(
            "octocat", "hello-world", state="closed", per_page=10
        )


class TestUserCommands:

    def test_command_names(self, plugin):
        commands = {c.name: c for c in plugin.get_user_commands()}
        assert set(commands) == {"github-status", "github-login", "github-logout", "github-issues"}
        assert commands["github-issues"].share_with_model is True
        assert commands["github-login"].share_with_model is False
        assert commands["github-login"].parameters[0].capture_rest is True

    def test_issue_state_completions(self, plugin):
        assert [c.value for c in plugin.get_command_completions("github-issues", [])] == [
            "open", "closed", "all",
        ]
        assert plugin.get_command_completions("github-issues", ["cl"]) == [
            CommandCompletion("closed", "Closed issues"),
        ]
        assert plugin.get_command_completions("github-status", []) == []

    def test_status_unauthenticated(self, plugin, output):
        assert plugin.execute_user_command("github-status", {}) == ""
        assert "Not authenticated" in _written(output)

    def test_status_authenticated(self, logged_in, output):
        logged_in.execute_user_command("github-status", {})
        assert "Authenticated as octocat (The Octocat)" in _written(output)

    def test_login_without_token_shows_usage(self, plugin, output):
        plugin.execute_user_command("github-login", {})
        assert "Usage: github-login <token>" in _written(output)

    def test_login_with_token(self, plugin, output, store, project):
        plugin.execute_user_command("github-login", {"token": VALID_TOKEN})

        assert "Logged in as octocat!" in _written(output)
        assert store.load(project) == VALID_TOKEN

    def test_login_with_invalid_token(self, plugin, output, store, project):
        plugin.execute_user_command("github-login", {"token": "ghp_bogus"})

        assert "Invalid token" in _written(output)
        assert store.load(project) is None

    def test_login_with_rate_limited_validation(self, plugin, sessions, output):
        client = MagicMock()
        client.get_authenticated_user.side_effect = GitHubAPIError(
            "API rate limit exceeded", status_code=403
        )
        sessions._client_factory = lambda token: client

        plugin.execute_user_command("github-login", {"token": VALID_TOKEN})

        written = _written(output)
        assert "Invalid token" not in written
        assert "Try again later" in written
        assert "rate limit" in written

    def test_logout(self, logged_in, output, store, project):
        logged_in.execute_user_command("github-logout", {})

        assert "Logged out from GitHub." in _written(output)
        assert store.load(project) is None

    def test_logout_when_not_logged_in(self, plugin, output):
        plugin.execute_user_command("github-logout", {})
        assert "Already logged out" in _written(output)

    def test_issues_shared_with_model(self, logged_in, client):
        client.list_issues.return_value = [
            {"number": 4, "title": "Slow", "state": "closed", "labels": [{"name": "perf"}]},
        ]

        text = logged_in.execute_user_command("github-issues", {"state": "closed"})

        assert text == "Here are the closed GitHub issues:\n\n#4 [closed] Slow  [perf]"

    def test_issues_none_found(self, logged_in, client, output):
        client.list_issues.return_value = []

        assert logged_in.execute_user_command("github-issues", {}) == ""
        assert "No open issues found." in _written(output)

    def test_issues_only_pull_requests(self, logged_in, client, output):
        client.list_issues.return_value = [
            {"number": 7, "title": "Feature", "state": "open", "pull_request": {"url": "x"}},
        ]

        assert logged_in.execute_user_command("github-issues", {}) == ""
        assert "No open issues found." in _written(output)

    def test_issues_unauthenticated(self, plugin, output):
        assert plugin.execute_user_command("github-issues", {}) == ""
        assert "github-login" in _written(output)

    def test_issues_bad_state(self, logged_in, output):
        logged_in.execute_user_command("github-issues", {"state": "later"})
        assert "Unknown state 'later'" in _written(output)

    def test_commands_are_executable_by_name(self, plugin, output):
        plugin.get_executors()["github-status"]({})
        assert "Not authenticated" in _written(output)


class TestShutdown:

    def test_cancel_login_cancels_running_flow(self, plugin):
        token = MagicMock()
        plugin._device_cancel = token

        plugin.shutdown()

        token.cancel.assert_called_once()
