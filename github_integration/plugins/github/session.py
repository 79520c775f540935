"""Authentication/session lifecycle for GitHub.

The SessionManager turns a stored or freshly obtained token into a verified
client, and runs the two login flows:

- Direct token: validate a pasted token with GET /user, store it on success.
- Device flow: run the OAuth device handshake, store the token on success.

A stored token is never trusted blindly. Every call to
get_authenticated_client() checks it against GitHub, and a token that fails
that check is deleted so the user is asked to log in again instead of
hitting the same error on every tool call.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

import requests

from .api import GitHubClient, GitHubIdentity
from .env import GitHubConfig
from .errors import GitHubAPIError, TokenStorageError
from .oauth import VerificationCallback, authorize_device
from .token_store import TokenStore
from ..types import CancelToken
from ...trace import mask_token, trace as _trace_write

logger = logging.getLogger(__name__)

ProjectPath = Union[str, os.PathLike]
ClientFactory = Callable[[str], GitHubClient]


class LoginFailure(Enum):
    """Why login_with_token() did not store a token."""
    NO_TOKEN = "no_token"
    REJECTED = "rejected"
    UNREACHABLE = "unreachable"
    API_ERROR = "api_error"
    STORAGE = "storage"


@dataclass
class TokenLoginResult:
    """Outcome of SessionManager.login_with_token().

    Truthy only when the token was validated and stored. On failure
    ``reason`` says which step failed and ``error`` carries the detail.
    """
    success: bool
    identity: Optional[GitHubIdentity] = None
    error: Optional[str] = None
    reason: Optional[LoginFailure] = None

    def __bool__(self) -> bool:
        return self.success


def _validation_failure(exc: GitHubAPIError) -> LoginFailure:
    if exc.status_code is None:
        return LoginFailure.UNREACHABLE
    if exc.is_auth_error:
        return LoginFailure.REJECTED
    return LoginFailure.API_ERROR


class SessionManager:
    """Produces validated GitHub clients for project directories.

    Args:
        config: Resolved GitHub settings, including the OAuth client ID used
            by the device flow.
        store: Token store; a default TokenStore is created if omitted.
        client_factory: Builds a client for a token. Defaults to a
            GitHubClient configured from ``config``.
        http_session: requests session for the device flow.
    """

    def __init__(
        self,
        config: GitHubConfig,
        store: Optional[TokenStore] = None,
        client_factory: Optional[ClientFactory] = None,
        http_session: Optional[requests.Session] = None,
    ):
        self._config = config
        self._store = store or TokenStore()
        self._client_factory = client_factory or self._default_client
        self._http_session = http_session

    @property
    def config(self) -> GitHubConfig:
        return self._config

    @property
    def store(self) -> TokenStore:
        return self._store

    def _trace(self, msg: str) -> None:
        _trace_write("GitHubSession", msg)

    def _default_client(self, token: str) -> GitHubClient:
        return GitHubClient(
            token,
            api_url=self._config.api_url,
            timeout=self._config.timeout,
            session=self._http_session,
        )

    def _verify(self, token: str) -> GitHubClient:
        """Build a client for ``token`` and confirm it with GET /user.

        Raises:
            GitHubAPIError: If GitHub rejects the token or cannot be reached.
        """
        client = self._client_factory(token)
        client.identity = client.get_authenticated_user()
        return client

    def get_authenticated_client(self, project: ProjectPath) -> Optional[GitHubClient]:
        """Return a verified client for the project, or None.

        None means "not authenticated": either no token is stored, or the
        stored token failed validation (in which case it has been deleted).
        """
        token = self._store.load(project)
        if not token:
            return None

        try:
            return self._verify(token)
        except GitHubAPIError as exc:
            logger.info("Stored GitHub token rejected, clearing it: %s", exc)
            self._trace(f"validation failed for {mask_token(token)}: {exc}")

        try:
            self._store.delete(project)
        except TokenStorageError as exc:
            logger.warning("Could not remove invalid GitHub token: %s", exc)
        return None

    def get_identity(self, project: ProjectPath) -> Optional[GitHubIdentity]:
        """Return who the project's stored token authenticates as, or None."""
        client = self.get_authenticated_client(project)
        return client.identity if client else None

    def login_with_token(self, project: ProjectPath, token: str) -> TokenLoginResult:
        """Validate a token and store it for the project.

        A token that fails validation is not stored and any previously
        stored token is left untouched.
        """
        token = (token or "").strip()
        if not token:
            return TokenLoginResult(False, error="No token provided.", reason=LoginFailure.NO_TOKEN)

        try:
            client = self._verify(token)
        except GitHubAPIError as exc:
            self._trace(f"login_with_token rejected {mask_token(token)}: {exc}")
            return TokenLoginResult(False, error=str(exc), reason=_validation_failure(exc))

        try:
            self._store.save(project, token)
        except TokenStorageError as exc:
            logger.error("Validated GitHub token could not be saved: %s", exc)
            return TokenLoginResult(
                False, identity=client.identity, error=str(exc), reason=LoginFailure.STORAGE
            )

        self._trace(f"login_with_token: authenticated as {client.identity.login}")
        return TokenLoginResult(True, identity=client.identity)

    def start_device_flow_login(
        self,
        project: ProjectPath,
        on_verification: VerificationCallback,
        cancel_token: Optional[CancelToken] = None,
        on_message: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Log in through the OAuth device flow and store the token.

        ``on_verification`` is called exactly once with the verification URL
        and user code; the call then blocks until GitHub reports the outcome.

        Returns:
            The new access token.

        Raises:
            DeviceFlowError: If the flow is misconfigured, denied, or expires.
            CancelledException: If cancel_token is cancelled during the wait.
            TokenStorageError: If the token cannot be stored.
        """
        tokens = authorize_device(
            self._config,
            on_verification,
            session=self._http_session,
            cancel_token=cancel_token,
            on_message=on_message,
        )
        self._store.save(project, tokens.access_token)
        self._trace(f"device flow complete, scope={tokens.scope or '(default)'}")
        return tokens.access_token

    def logout(self, project: ProjectPath) -> bool:
        """Delete the project's token. Returns whether one was stored."""
        return self._store.delete(project)
