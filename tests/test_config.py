"""Tests for configuration management."""

from pathlib import Path

import pytest

from qbogate import config
from qbogate.config import GatewaySettings, Mode


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
    """Keep the developer's environment and home directory out of the tests."""
    for key in (
        "MCP_MODE",
        "SPEC_PATH",
        "QBO_BASE",
        "QBO_TOKEN",
        "PORT",
        "QBOGATE_HOST",
        "QBOGATE_CAPTURE_PATH",
        "QBOGATE_UPSTREAM_TIMEOUT",
        "QBOGATE_VERBOSE",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(Path, "home", lambda: temp_dir / "home")
    monkeypatch.chdir(temp_dir)


class TestLoadEnvFile:
    """Tests for load_env_file."""

    def test_load_env_file_missing_returns_empty(self, temp_dir: Path) -> None:
        assert config.load_env_file(temp_dir / ".env") == {}

    def test_load_env_file_parses_key_value(self, temp_dir: Path) -> None:
        env_path = temp_dir / ".env"
        env_path.write_text("MCP_MODE=proxy\nQBO_TOKEN=abc\n")
        assert config.load_env_file(env_path) == {"MCP_MODE": "proxy", "QBO_TOKEN": "abc"}

    def test_load_env_file_ignores_comments_and_strips_quotes(self, temp_dir: Path) -> None:
        env_path = temp_dir / ".env"
        env_path.write_text("# comment\n\nQBO_BASE=\"https://sandbox\"\n  \nPORT='5000'\n")
        assert config.load_env_file(env_path) == {"QBO_BASE": "https://sandbox", "PORT": "5000"}


class TestGetConfig:
    def test_default_when_unset(self) -> None:
        assert config.get_config("QBO_TOKEN", default="fallback") == "fallback"

    def test_env_file_used(self, temp_dir: Path) -> None:
        (temp_dir / ".env").write_text("QBO_TOKEN=from-file\n")
        assert config.get_token() == "from-file"

    def test_environment_beats_env_file(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (temp_dir / ".env").write_text("QBO_TOKEN=from-file\n")
        monkeypatch.setenv("QBO_TOKEN", "from-env")
        assert config.get_token() == "from-env"

    def test_global_yaml_used_last(self, temp_dir: Path) -> None:
        global_path = config.global_config_path()
        global_path.parent.mkdir(parents=True)
        global_path.write_text("QBO_BASE: https://sandbox-quickbooks.api.intuit.com\nPORT: 4100\n")
        assert config.get_upstream_base() == "https://sandbox-quickbooks.api.intuit.com"
        assert config.get_port() == 4100

    def test_invalid_port_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "not-a-port")
        assert config.get_port() == 4000

    def test_invalid_timeout_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("QBOGATE_UPSTREAM_TIMEOUT", "soon")
        assert config.get_upstream_timeout() == 30.0

    def test_verbose_flag(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert config.get_verbose() is False
        monkeypatch.setenv("QBOGATE_VERBOSE", "yes")
        assert config.get_verbose() is True


class TestParseMode:
    @pytest.mark.parametrize("raw,expected", [("mock", Mode.MOCK), ("PROXY", Mode.PROXY), (" capture ", Mode.CAPTURE)])
    def test_known_modes(self, raw: str, expected: Mode) -> None:
        assert config.parse_mode(raw) is expected

    @pytest.mark.parametrize("raw", ["", None, "replay", "proxy-ish"])
    def test_unknown_modes_fall_back_to_mock(self, raw) -> None:
        assert config.parse_mode(raw) is Mode.MOCK

    def test_forwarding_modes(self) -> None:
        assert Mode.MOCK.forwards is False
        assert Mode.PROXY.forwards is True
        assert Mode.CAPTURE.forwards is True


class TestLoadSettings:
    def test_defaults(self) -> None:
        settings = config.load_settings()
        assert settings == GatewaySettings()
        assert settings.mode is Mode.MOCK
        assert settings.port == 4000
        assert settings.spec_path == Path("QuickBooksOnlineV3.json")
        assert settings.upstream_base == "https://quickbooks.api.intuit.com"
        assert settings.token is None
        assert settings.routing_prefix == "/api"
        assert settings.health_path == "/health"

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MCP_MODE", "Capture")
        monkeypatch.setenv("QBO_TOKEN", "tok")
        monkeypatch.setenv("QBOGATE_CAPTURE_PATH", "logs/exchanges.ndjson")
        settings = config.load_settings()
        assert settings.mode is Mode.CAPTURE
        assert settings.token == "tok"
        assert settings.capture_path == Path("logs/exchanges.ndjson")

    def test_unrecognized_mode_is_mock(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MCP_MODE", "livewire")
        assert config.load_settings().mode is Mode.MOCK

    def test_settings_are_immutable(self) -> None:
        settings = GatewaySettings()
        with pytest.raises(AttributeError):
            settings.mode = Mode.PROXY  # type: ignore[misc]
