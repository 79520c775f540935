"""Trace file for following plugin activity.

The host runtime usually owns the terminal, so plugins append diagnostic
lines to a plain file instead of printing. This is separate from the
``logging`` tree.

GITHUB_INTEGRATION_TRACE_LOG picks the file. Unset means
``github_integration_trace.log`` in the temp directory, and an empty value
turns tracing off.

Usage:
    from github_integration.trace import trace

    trace("GitHubPlugin", "exposed")
    trace("GitHubPlugin", "login failed", include_traceback=True)
"""

import os
import tempfile
import traceback
from datetime import datetime
from typing import Optional, Set

ENV_TRACE_LOG = "GITHUB_INTEGRATION_TRACE_LOG"
DEFAULT_TRACE_FILENAME = "github_integration_trace.log"

# Parent directories already created in this process
_created_dirs: Set[str] = set()


def _make_parent(path: str) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    if parent in _created_dirs:
        return
    os.makedirs(parent, exist_ok=True)
    _created_dirs.add(parent)


def resolve_trace_path(
    *env_vars: str,
    default_filename: str = DEFAULT_TRACE_FILENAME,
) -> Optional[str]:
    """Return the trace file named by the first set variable in ``env_vars``.

    A variable set to the empty string disables tracing (None). When none is
    set, the file is ``default_filename`` in the temp directory.
    """
    for var in env_vars:
        value = os.environ.get(var)
        if value is None:
            continue
        return value or None

    return os.path.join(tempfile.gettempdir(), default_filename)


def trace_write(
    component: str,
    msg: str,
    trace_path: Optional[str],
    *,
    include_traceback: bool = False,
) -> None:
    """Append ``[time] [component] msg`` to ``trace_path``.

    Does nothing when trace_path is None. File system errors are dropped:
    a broken trace file must not fail the tool call being traced.

    Args:
        include_traceback: Also write the exception currently being handled.
    """
    if not trace_path:
        return

    stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    prefix = f"[{stamp}] [{component}]"
    text = f"{prefix} {msg}\n"
    if include_traceback:
        tb = traceback.format_exc()
        if tb.strip() != "NoneType: None":
            text += f"{prefix} Traceback:\n{tb}\n"

    try:
        _make_parent(trace_path)
        with open(trace_path, "a", encoding="utf-8") as f:
            f.write(text)
    except OSError:
        pass


def trace(component: str, msg: str, *, include_traceback: bool = False) -> None:
    """Write to the integration trace file (see module docstring)."""
    trace_write(
        component,
        msg,
        resolve_trace_path(ENV_TRACE_LOG),
        include_traceback=include_traceback,
    )


def mask_token(token: Optional[str], head: int = 4, tail: int = 4) -> str:
    """Shorten a credential to its first and last few characters."""
    if not token:
        return "(none)"
    if len(token) <= head + tail:
        return "***"
    return f"{token[:head]}...{token[-tail:]}"
