"""Resolve the GitHub repository a project directory points at."""

import logging
import re
import subprocess
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

# git@github.com:owner/repo.git
_SSH_PATTERN = re.compile(r"git@github\.com:(.+?)/(.+?)(?:\.git)?/?$")
# https://github.com/owner/repo.git (also ssh://git@github.com/owner/repo)
_URL_PATTERN = re.compile(r"(?:https?|ssh)://(?:[^@/]+@)?github\.com/(.+?)/(.+?)(?:\.git)?/?$")

GIT_TIMEOUT = 10  # seconds


class RepoInfo(NamedTuple):
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_remote_url(url: str) -> Optional[RepoInfo]:
    """Parse a GitHub remote URL into owner and repo.

    Returns:
        RepoInfo, or None for URLs that do not point at github.com.
    """
    url = url.strip()
    for pattern in (_SSH_PATTERN, _URL_PATTERN):
        match = pattern.match(url)
        if match:
            return RepoInfo(owner=match.group(1), repo=match.group(2))
    return None


def get_repo_info(cwd: str) -> Optional[RepoInfo]:
    """Read the origin remote of the repository at ``cwd``.

    Returns:
        RepoInfo, or None if there is no origin, git is unavailable, or the
        remote is not a GitHub URL.
    """
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("git remote lookup failed in %s: %s", cwd, exc)
        return None

    if result.returncode != 0 or not result.stdout.strip():
        return None

    return parse_remote_url(result.stdout)
