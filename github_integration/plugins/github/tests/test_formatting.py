"""Tests for rendering GitHub payloads."""

from ..api import GitHubIdentity
from ..formatting import (
    format_identity,
    format_issue_detail,
    format_issue_line,
    format_issue_list,
    format_pull_list,
    label_names,
)


def _issue(number, title="Bug", state="open", **extra):
    issue = {"number": number, "title": title, "state": state, "labels": []}
    issue.update(extra)
    return issue


class TestIdentity:

    def test_with_name(self):
        assert format_identity(GitHubIdentity("octocat", "The Octocat")) == "octocat (The Octocat)"

    def test_without_name(self):
        assert format_identity(GitHubIdentity("octocat")) == "octocat (no name set)"


class TestIssueList:

    def test_line_with_assignee_and_labels(self):
        issue = _issue(1, assignee={"login": "alice"}, labels=[{"name": "bug"}, "ui"])
        assert format_issue_line(issue) == "#1 [open] Bug  (alice)  [bug, ui]"

    def test_unassigned(self):
        assert format_issue_line(_issue(2, title="Crash")) == "#2 [open] Crash  (unassigned)"

    def test_line_without_assignee_column(self):
        issue = _issue(3, assignee={"login": "alice"})
        assert format_issue_line(issue, show_assignee=False) == "#3 [open] Bug"

    def test_pull_requests_are_skipped(self):
        issues = [
            _issue(1, title="Real issue"),
            _issue(2, title="A PR", pull_request={"url": "https://api.github.com/..."}),
        ]
        text = format_issue_list(issues)
        assert "Real issue" in text
        assert "A PR" not in text

    def test_empty(self):
        assert format_issue_list([]) == "No issues found."

    def test_only_pull_requests(self):
        assert format_issue_list([_issue(1, pull_request={"url": "x"})]) == "No issues found."

    def test_label_names_skips_blank(self):
        assert label_names([{"name": ""}, None, "x", {"name": "y"}]) == ["x", "y"]


class TestIssueDetail:

    def test_full_detail(self):
        issue = _issue(
            42,
            title="Broken build",
            user={"login": "bob"},
            assignees=[{"login": "alice"}, {"login": "carol"}],
            labels=[{"name": "ci"}],
            created_at="2024-01-01T00:00:00Z",
            updated_at="2024-01-02T00:00:00Z",
            body="It fails.",
        )
        comments = [{"user": {"login": "alice"}, "created_at": "2024-01-03", "body": "On it"}]

        text = format_issue_detail(issue, comments)

        assert text.startswith("# #42: Broken build\n")
        assert "**Author:** bob" in text
        assert "**Assignees:** alice, carol" in text
        assert "**Labels:** ci" in text
        assert "It fails." in text
        assert "## Comments (1)" in text
        assert "**alice** (2024-01-03):\nOn it" in text

    def test_no_body_no_comments(self):
        text = format_issue_detail(_issue(5), [])

        assert "(no description)" in text
        assert "**Assignees:** none" in text
        assert "## Comments" not in text


class TestPullList:

    def test_lines(self):
        pulls = [{
            "number": 9,
            "title": "Add feature",
            "state": "open",
            "user": {"login": "dave"},
            "head": {"ref": "feature"},
            "base": {"ref": "main"},
        }]
        assert format_pull_list(pulls) == "#9 [open] Add feature  (dave)  feature -> main"

    def test_empty(self):
        assert format_pull_list([]) == "No pull requests found."
