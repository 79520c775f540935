"""requests sessions that respect corporate proxy and CA settings.

requests already honours HTTP_PROXY/HTTPS_PROXY/NO_PROXY on its own. On top
of that this module adds:

- GITHUB_INTEGRATION_NO_PROXY: hosts that must never go through the proxy,
  matched exactly (no suffix matching)
- a CA bundle from REQUESTS_CA_BUNDLE or SSL_CERT_FILE applied to the session
- a fixed User-Agent, which the GitHub API requires
"""

import logging
import os
import urllib.parse
from typing import Any, Dict, Iterable, List, Optional

import requests

logger = logging.getLogger(__name__)

ENV_NO_PROXY = "NO_PROXY"
ENV_INTEGRATION_NO_PROXY = "GITHUB_INTEGRATION_NO_PROXY"

CA_BUNDLE_VARS = ("REQUESTS_CA_BUNDLE", "SSL_CERT_FILE")

# Proxy keys requests reads from the environment (ALL_PROXY lands under "all")
NO_PROXY_SCHEMES = ("http", "https", "all")

DEFAULT_USER_AGENT = "github-integration/0.3"


def active_cert_bundle(prefer_order: Optional[Iterable[str]] = None) -> Optional[str]:
    """Absolute path of the configured CA bundle, or None."""
    for var in prefer_order or CA_BUNDLE_VARS:
        path = os.environ.get(var)
        if path:
            return os.path.abspath(os.path.expanduser(path))
    return None


def _split_hosts(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


def _entry_matches(host: str, port: Optional[int], entry: str) -> bool:
    """Match one NO_PROXY entry the way curl and requests do.

    ``*`` matches all hosts. ``example.com`` and ``.example.com`` match the
    domain and its subdomains. ``host:port`` also requires the port to match.
    """
    if entry == "*":
        return True

    name, sep, port_text = entry.rpartition(":")
    if sep and port_text.isdigit():
        if port != int(port_text):
            return False
        entry = name

    domain = entry.lstrip(".")
    return host == domain or host.endswith("." + domain)


def should_bypass_proxy(url: str) -> bool:
    """True if requests to ``url`` must skip the proxy.

    The host is checked against GITHUB_INTEGRATION_NO_PROXY (exact) and then
    NO_PROXY/no_proxy (domain suffix rules).
    """
    parsed = urllib.parse.urlparse(url)
    if not parsed.hostname:
        return False
    host = parsed.hostname.lower()

    if host in _split_hosts(os.environ.get(ENV_INTEGRATION_NO_PROXY)):
        return True

    no_proxy = os.environ.get(ENV_NO_PROXY) or os.environ.get(ENV_NO_PROXY.lower())
    return any(_entry_matches(host, parsed.port, entry) for entry in _split_hosts(no_proxy))


def get_requests_session() -> requests.Session:
    """New session with the User-Agent and, when configured, the CA bundle.

    Pass ``**get_requests_kwargs(url)`` on each request so the exact-host
    bypass list applies.
    """
    session = requests.Session()
    session.headers["User-Agent"] = DEFAULT_USER_AGENT

    bundle = active_cert_bundle()
    if bundle and os.path.isfile(bundle):
        session.verify = bundle
    elif bundle:
        logger.warning(
            "CA bundle %s (from %s) does not exist; using default certificate verification",
            bundle, " or ".join(CA_BUNDLE_VARS),
        )

    return session


def get_requests_kwargs(url: str) -> Dict[str, Any]:
    """Extra request kwargs for ``url``.

    A bypassed host gets every proxy scheme set to None. An empty dict would
    be refilled from HTTP(S)_PROXY by ``Session.merge_environment_settings``;
    None entries survive that merge and are dropped afterwards.
    """
    if should_bypass_proxy(url):
        return {"proxies": dict.fromkeys(NO_PROXY_SCHEMES)}
    return {}
