"""Tests for GitHub configuration resolution."""

import pytest

from ..env import (
    DEFAULT_API_URL,
    DEFAULT_TIMEOUT,
    ENV_API_URL,
    ENV_GITHUB_CLIENT_ID,
    ENV_TIMEOUT,
    load_env_file,
    resolve_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so values loaded from .env files are undone after each test
    for var in (ENV_GITHUB_CLIENT_ID, ENV_API_URL, ENV_TIMEOUT):
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)


class TestResolveConfig:

    def test_defaults(self):
        config = resolve_config()
        assert config.client_id == ""
        assert config.api_url == DEFAULT_API_URL
        assert config.scope == "repo"
        assert config.timeout == DEFAULT_TIMEOUT

    def test_environment(self, monkeypatch):
        monkeypatch.setenv(ENV_GITHUB_CLIENT_ID, " Iv1.fromenv ")
        monkeypatch.setenv(ENV_API_URL, "https://ghe.example.com/api/v3/")
        monkeypatch.setenv(ENV_TIMEOUT, "12")

        config = resolve_config()

        assert config.client_id == "Iv1.fromenv"
        assert config.api_url == "https://ghe.example.com/api/v3"
        assert config.timeout == 12.0

    def test_explicit_config_wins(self, monkeypatch):
        monkeypatch.setenv(ENV_GITHUB_CLIENT_ID, "Iv1.fromenv")

        config = resolve_config({"client_id": "Iv1.explicit", "scopes": "repo read:org"})

        assert config.client_id == "Iv1.explicit"
        assert config.scopes == ("repo", "read:org")
        assert config.scope == "repo read:org"

    @pytest.mark.parametrize("raw", ["abc", "0", "-5"])
    def test_bad_timeout_falls_back(self, monkeypatch, raw):
        monkeypatch.setenv(ENV_TIMEOUT, raw)
        assert resolve_config().timeout == DEFAULT_TIMEOUT


class TestLoadEnvFile:

    def test_loads_workspace_env(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text(f"{ENV_GITHUB_CLIENT_ID}=Iv1.dotenv\n")

        assert load_env_file(str(tmp_path)) is True
        assert resolve_config().client_id == "Iv1.dotenv"

    def test_does_not_override_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_GITHUB_CLIENT_ID, "Iv1.process")
        (tmp_path / ".env").write_text(f"{ENV_GITHUB_CLIENT_ID}=Iv1.dotenv\n")

        load_env_file(str(tmp_path))

        assert resolve_config().client_id == "Iv1.process"

    def test_missing_file(self, tmp_path):
        assert load_env_file(str(tmp_path)) is False
