"""Thin GitHub REST client.

Carries a bearer token and exposes the handful of endpoints the plugin
uses. Responses are returned as decoded JSON; shaping them into text is
left to ``formatting``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .env import DEFAULT_API_URL, DEFAULT_TIMEOUT
from .errors import GitHubAPIError
from ...http import get_requests_kwargs, get_requests_session

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"

GITHUB_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": API_VERSION,
}


@dataclass(frozen=True)
class GitHubIdentity:
    """The user a token authenticates as."""
    login: str
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GitHubIdentity":
        return cls(login=data["login"], name=data.get("name") or None)


class GitHubClient:
    """Authenticated GitHub REST API client.

    Attributes:
        identity: Set by the session manager once the token has been
            validated; None for a client that has not been checked yet.
    """

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session = session or get_requests_session()
        self.identity: Optional[GitHubIdentity] = None

    @property
    def token(self) -> str:
        return self._token

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Perform a request against the API and decode the JSON body.

        Raises:
            GitHubAPIError: On transport failure or non-2xx response.
        """
        url = f"{self._api_url}{path}"
        headers = {**GITHUB_HEADERS, "Authorization": f"Bearer {self._token}"}
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = self._session.request(
                method,
                url,
                params=params or None,
                json=json,
                headers=headers,
                timeout=self._timeout,
                **get_requests_kwargs(url),
            )
        except requests.RequestException as exc:
            raise GitHubAPIError(str(exc)) from exc

        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            logger.debug("GitHub %s %s -> %s: %s", method, path, response.status_code, message)
            raise GitHubAPIError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GitHubAPIError(f"Invalid JSON from {path}", status_code=response.status_code) from exc

    # ==================== Users ====================

    def get_authenticated_user(self) -> GitHubIdentity:
        """GET /user - who the token belongs to."""
        data = self._request("GET", "/user")
        try:
            return GitHubIdentity.from_dict(data)
        except (KeyError, TypeError) as exc:
            raise GitHubAPIError("Unexpected /user response") from exc

    # ==================== Issues ====================

    def list_issues(
        self,
        owner: str,
        repo: str,
        state: str = "open",
        labels: Optional[str] = None,
        assignee: Optional[str] = None,
        per_page: int = 30,
    ) -> List[Dict[str, Any]]:
        """List issues for a repository.

        The endpoint also returns pull requests; callers filter them out.
        """
        return self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues",
            params={
                "state": state,
                "labels": labels or None,
                "assignee": assignee or None,
                "per_page": per_page,
            },
        )

    def get_issue(self, owner: str, repo: str, number: int) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{owner}/{repo}/issues/{number}")

    def list_issue_comments(
        self, owner: str, repo: str, number: int, per_page: int = 100
    ) -> List[Dict[str, Any]]:
        return self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues/{number}/comments",
            params={"per_page": per_page},
        )

    def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: Optional[str] = None,
        labels: Optional[List[str]] = None,
        assignees: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"title": title}
        if body:
            payload["body"] = body
        if labels:
            payload["labels"] = labels
        if assignees:
            payload["assignees"] = assignees
        return self._request("POST", f"/repos/{owner}/{repo}/issues", json=payload)

    def create_issue_comment(
        self, owner: str, repo: str, number: int, body: str
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{number}/comments",
            json={"body": body},
        )

    def close_issue(
        self, owner: str, repo: str, number: int, reason: str = "completed"
    ) -> Dict[str, Any]:
        """Close an issue with state_reason 'completed' or 'not_planned'."""
        return self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/issues/{number}",
            json={"state": "closed", "state_reason": reason},
        )

    # ==================== Pull requests ====================

    def list_pulls(
        self, owner: str, repo: str, state: str = "open", per_page: int = 10
    ) -> List[Dict[str, Any]]:
        return self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"state": state, "per_page": per_page},
        )
