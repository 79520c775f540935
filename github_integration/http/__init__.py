"""HTTP helpers shared by the GitHub REST client and the OAuth device flow.

    from github_integration.http import get_requests_session, get_requests_kwargs

    session = get_requests_session()
    response = session.get(url, **get_requests_kwargs(url))
"""

from .proxy import (
    active_cert_bundle,
    get_requests_kwargs,
    get_requests_session,
    should_bypass_proxy,
)

__all__ = [
    "active_cert_bundle",
    "get_requests_kwargs",
    "get_requests_session",
    "should_bypass_proxy",
]
