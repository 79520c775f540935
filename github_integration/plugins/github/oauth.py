"""GitHub OAuth Device Authorization Grant (RFC 8628).

This flow is designed for CLI tools and agents that cannot receive a browser
callback directly.

Flow:
1. Request device and user codes from GitHub
2. Hand the user code and verification URL to the caller (exactly once)
3. Poll the token endpoint until the user completes authorization,
   denies it, the code expires, or the caller cancels

Nothing here persists anything; storing the resulting token is the session
manager's job, and only happens after a complete handshake.

Reference: https://docs.github.com/en/apps/oauth-apps/building-oauth-apps/authorizing-oauth-apps#device-flow
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from .env import DEFAULT_OAUTH_URL, DEFAULT_TIMEOUT, GitHubConfig
from .errors import (
    ClientIdMissingError,
    DeviceFlowDeniedError,
    DeviceFlowError,
    DeviceFlowExpiredError,
)
from ..types import CancelledException, CancelToken
from ...http import get_requests_kwargs, get_requests_session
from ...trace import trace as _trace_write

logger = logging.getLogger(__name__)

DEVICE_CODE_PATH = "/login/device/code"
TOKEN_PATH = "/login/oauth/access_token"
VERIFICATION_URL = "https://github.com/login/device"

DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"

# Default polling interval (seconds)
DEFAULT_POLL_INTERVAL = 5

# Added to the interval on every slow_down response
SLOW_DOWN_INCREMENT = 5

# Device code expiration (typically 15 minutes)
DEVICE_CODE_EXPIRES_IN = 900


def _oauth_trace(msg: str) -> None:
    _trace_write("GitHubOAuth", msg)


@dataclass
class OAuthTokens:
    """OAuth token set with metadata."""
    access_token: str
    token_type: str = "bearer"
    scope: str = ""


@dataclass
class DeviceCodeResponse:
    """Response from device code request."""
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceCodeResponse":
        return cls(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_uri=data.get("verification_uri", VERIFICATION_URL),
            expires_in=int(data.get("expires_in", DEVICE_CODE_EXPIRES_IN)),
            interval=int(data.get("interval", DEFAULT_POLL_INTERVAL)),
        )


@dataclass(frozen=True)
class DeviceVerification:
    """What the user needs to complete authorization out-of-band."""
    verification_uri: str
    user_code: str


VerificationCallback = Callable[[DeviceVerification], None]


def _sleep(seconds: float, cancel_token: Optional[CancelToken] = None) -> None:
    """Sleep between polls, waking early (and raising) on cancellation."""
    if cancel_token is None:
        time.sleep(seconds)
        return
    if cancel_token.wait(seconds):
        raise CancelledException("Device flow login was cancelled")


def _post_form(
    session: requests.Session,
    url: str,
    data: Dict[str, str],
    timeout: float,
) -> Dict[str, Any]:
    """POST form data and return the JSON response.

    Raises:
        requests.RequestException: On transport failure.
        DeviceFlowError: On an HTTP error status or a non-JSON body.
    """
    response = session.post(
        url,
        data=data,
        headers={"Accept": "application/json"},
        timeout=timeout,
        **get_requests_kwargs(url),
    )

    if response.status_code >= 400:
        try:
            payload = response.json()
            error_msg = payload.get("error_description") or payload.get("error") or response.text
        except ValueError:
            error_msg = response.text
        raise DeviceFlowError(f"HTTP {response.status_code}: {error_msg}")

    try:
        return response.json()
    except ValueError as exc:
        raise DeviceFlowError(f"Unexpected response from {url}: {response.text[:200]}") from exc


def request_device_code(
    client_id: str,
    scope: str,
    session: Optional[requests.Session] = None,
    oauth_url: str = DEFAULT_OAUTH_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> DeviceCodeResponse:
    """Request device and user codes from GitHub.

    Args:
        client_id: OAuth App client ID.
        scope: Space-separated OAuth scopes to request.
        session: requests session to use; a configured one is created if omitted.
        oauth_url: Base URL of the OAuth host.
        timeout: HTTP timeout in seconds.

    Returns:
        DeviceCodeResponse with codes and verification URL.

    Raises:
        DeviceFlowError: If the request fails or GitHub rejects it.
    """
    session = session or get_requests_session()
    try:
        response = _post_form(
            session,
            f"{oauth_url}{DEVICE_CODE_PATH}",
            {"client_id": client_id, "scope": scope},
            timeout,
        )
    except requests.RequestException as exc:
        raise DeviceFlowError(f"Device code request failed: {exc}") from exc

    if "error" in response:
        error_msg = response.get("error_description") or response.get("error")
        raise DeviceFlowError(f"Device code request failed: {error_msg}")

    try:
        return DeviceCodeResponse.from_dict(response)
    except (KeyError, TypeError, ValueError) as exc:
        raise DeviceFlowError(f"Malformed device code response: missing {exc}") from exc


def poll_for_token(
    device_code: str,
    client_id: str,
    interval: int = DEFAULT_POLL_INTERVAL,
    expires_in: int = DEVICE_CODE_EXPIRES_IN,
    session: Optional[requests.Session] = None,
    oauth_url: str = DEFAULT_OAUTH_URL,
    timeout: float = DEFAULT_TIMEOUT,
    cancel_token: Optional[CancelToken] = None,
    on_message: Optional[Callable[[str], None]] = None,
) -> OAuthTokens:
    """Poll the token endpoint until the user completes authorization.

    Args:
        device_code: Device code from the device code request.
        client_id: OAuth App client ID.
        interval: Polling interval in seconds.
        expires_in: Seconds until the device code expires.
        session: requests session to use; a configured one is created if omitted.
        oauth_url: Base URL of the OAuth host.
        timeout: HTTP timeout in seconds.
        cancel_token: Cancels the wait between polls.
        on_message: Optional callback for status messages.

    Returns:
        OAuthTokens on successful authorization.

    Raises:
        DeviceFlowExpiredError: If the device code expires first.
        DeviceFlowDeniedError: If the user denies the request.
        DeviceFlowError: For any other authorization error.
        CancelledException: If cancel_token is cancelled.
    """
    session = session or get_requests_session()
    url = f"{oauth_url}{TOKEN_PATH}"
    data = {
        "client_id": client_id,
        "device_code": device_code,
        "grant_type": DEVICE_GRANT_TYPE,
    }

    start_time = time.monotonic()
    current_interval = interval

    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        elapsed = time.monotonic() - start_time
        if elapsed >= expires_in:
            raise DeviceFlowExpiredError()

        try:
            response = _post_form(session, url, data, timeout)
        except requests.RequestException as exc:
            # Network error - wait and retry until the code expires
            logger.debug("Token poll failed, retrying: %s", exc)
            _oauth_trace(f"poll: transport error {exc}")
            _sleep(current_interval, cancel_token)
            continue

        error = response.get("error")
        if error == "authorization_pending":
            if on_message:
                remaining = int(expires_in - elapsed)
                on_message(f"Waiting for authorization... ({remaining}s remaining)")
            _sleep(current_interval, cancel_token)
            continue

        if error == "slow_down":
            current_interval = int(response.get("interval", current_interval + SLOW_DOWN_INCREMENT))
            if on_message:
                on_message(f"Rate limited, slowing down (interval: {current_interval}s)")
            _sleep(current_interval, cancel_token)
            continue

        if error == "expired_token":
            raise DeviceFlowExpiredError()

        if error == "access_denied":
            raise DeviceFlowDeniedError()

        if error:
            error_msg = response.get("error_description") or error
            raise DeviceFlowError(f"Authorization failed: {error_msg}")

        if response.get("access_token"):
            _oauth_trace("poll: authorization complete")
            return OAuthTokens(
                access_token=response["access_token"],
                token_type=response.get("token_type", "bearer"),
                scope=response.get("scope", ""),
            )

        # Unexpected response
        _sleep(current_interval, cancel_token)


def authorize_device(
    config: GitHubConfig,
    on_verification: VerificationCallback,
    session: Optional[requests.Session] = None,
    cancel_token: Optional[CancelToken] = None,
    on_message: Optional[Callable[[str], None]] = None,
) -> OAuthTokens:
    """Run the complete device handshake.

    ``on_verification`` is invoked exactly once, after GitHub issues the user
    code and before polling starts.

    Raises:
        ClientIdMissingError: If config has no client ID.
        DeviceFlowError: If any step of the handshake fails.
        CancelledException: If cancel_token is cancelled.
    """
    if not config.client_id:
        raise ClientIdMissingError()

    session = session or get_requests_session()
    device = request_device_code(
        config.client_id,
        config.scope,
        session=session,
        oauth_url=config.oauth_url,
        timeout=config.timeout,
    )
    _oauth_trace(f"device code issued, expires_in={device.expires_in}s interval={device.interval}s")

    on_verification(DeviceVerification(
        verification_uri=device.verification_uri,
        user_code=device.user_code,
    ))

    return poll_for_token(
        device.device_code,
        config.client_id,
        interval=device.interval,
        expires_in=device.expires_in,
        session=session,
        oauth_url=config.oauth_url,
        timeout=config.timeout,
        cancel_token=cancel_token,
        on_message=on_message,
    )
