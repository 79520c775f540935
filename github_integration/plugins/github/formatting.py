"""Render GitHub API payloads as plain text for the model and the user."""

from typing import Any, Dict, Iterable, List, Optional

from .api import GitHubIdentity


def format_identity(identity: GitHubIdentity) -> str:
    return f"{identity.login} ({identity.name or 'no name set'})"


def is_pull_request(issue: Dict[str, Any]) -> bool:
    """The issues endpoint also returns PRs; they carry a pull_request key."""
    return bool(issue.get("pull_request"))


def label_names(labels: Iterable[Any]) -> List[str]:
    """Label entries are either strings or objects with a name."""
    names = []
    for label in labels or []:
        name = label if isinstance(label, str) else (label or {}).get("name")
        if name:
            names.append(name)
    return names


def _login(user: Optional[Dict[str, Any]], default: str = "unknown") -> str:
    return (user or {}).get("login") or default


def format_issue_line(issue: Dict[str, Any], show_assignee: bool = True) -> str:
    line = f"#{issue['number']} [{issue.get('state', '?')}] {issue.get('title', '')}"
    if show_assignee:
        line += f"  ({_login(issue.get('assignee'), 'unassigned')})"
    labels = label_names(issue.get("labels"))
    if labels:
        line += f"  [{', '.join(labels)}]"
    return line


def format_issue_list(issues: List[Dict[str, Any]], show_assignee: bool = True) -> str:
    """One line per issue; pull requests are skipped."""
    real_issues = [i for i in issues if not is_pull_request(i)]
    if not real_issues:
        return "No issues found."
    return "\n".join(format_issue_line(i, show_assignee) for i in real_issues)


def format_issue_detail(issue: Dict[str, Any], comments: List[Dict[str, Any]]) -> str:
    """Full issue view with description and comments, as markdown."""
    assignees = ", ".join(_login(a) for a in issue.get("assignees") or []) or "none"
    labels = ", ".join(label_names(issue.get("labels"))) or "none"

    lines = [
        f"# #{issue['number']}: {issue.get('title', '')}",
        f"**State:** {issue.get('state', '?')}",
        f"**Author:** {_login(issue.get('user'))}",
        f"**Assignees:** {assignees}",
        f"**Labels:** {labels}",
        f"**Created:** {issue.get('created_at', '?')}",
        f"**Updated:** {issue.get('updated_at', '?')}",
        "",
        "## Description",
        "",
        issue.get("body") or "(no description)",
    ]

    if comments:
        lines.extend(["", f"## Comments ({len(comments)})", ""])
        for comment in comments:
            lines.append("---")
            lines.append(f"**{_login(comment.get('user'))}** ({comment.get('created_at', '?')}):")
            lines.append(comment.get("body") or "")
            lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def format_pull_list(pulls: List[Dict[str, Any]]) -> str:
    if not pulls:
        return "No pull requests found."
    lines = []
    for pr in pulls:
        head = (pr.get("head") or {}).get("ref", "?")
        base = (pr.get("base") or {}).get("ref", "?")
        lines.append(
            f"#{pr['number']} [{pr.get('state', '?')}] {pr.get('title', '')}"
            f"  ({_login(pr.get('user'))})  {head} -> {base}"
        )
    return "\n".join(lines)
