"""Pytest fixtures shared by all github_integration tests."""

import pytest

from .trace import ENV_TRACE_LOG


@pytest.fixture(autouse=True)
def disable_trace_log(monkeypatch):
    """Keep test runs from appending to the trace file in the temp directory."""
    monkeypatch.setenv(ENV_TRACE_LOG, "")
