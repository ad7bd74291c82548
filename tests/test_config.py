"""Tests for configuration loading from files and environment variables."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from bridger.core.config import (
    ClientConfig,
    apply_overrides,
    flatten_config,
    load_config,
    load_config_from_file,
    validate_config,
)
from bridger.core.exceptions import ConfigError

CONFIG_ENV_VARS = (
    "LOCAL_HOST",
    "CLOUD_WEBSOCKET",
    "LOCAL_ID",
    "RECONNECT_DELAY",
    "CONNECT_TIMEOUT",
    "REQUEST_TIMEOUT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the caller's environment and working directory."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestClientConfig:
    """Test ClientConfig settings."""

    def test_default_values(self) -> None:
        """Test default values."""
        config = ClientConfig()
        assert config.local_host == ""
        assert config.cloud_websocket == ""
        assert config.local_id == ""
        assert config.reconnect_delay == 5.0
        assert config.connect_timeout == 10.0
        assert config.request_timeout is None
        assert config.log_level == "info"

    def test_env_override_local_host(self) -> None:
        """Test LOCAL_HOST env var."""
        with patch.dict(os.environ, {"LOCAL_HOST": "http://localhost:3000"}):
            config = ClientConfig()
            assert config.local_host == "http://localhost:3000"

    def test_env_override_cloud_websocket(self) -> None:
        """Test CLOUD_WEBSOCKET env var."""
        with patch.dict(os.environ, {"CLOUD_WEBSOCKET": "wss://broker.example.com/ws"}):
            config = ClientConfig()
            assert config.cloud_websocket == "wss://broker.example.com/ws"

    def test_env_override_reconnect_delay(self) -> None:
        """Test RECONNECT_DELAY env var."""
        with patch.dict(os.environ, {"RECONNECT_DELAY": "1.5"}):
            config = ClientConfig()
            assert config.reconnect_delay == 1.5

    def test_env_overrides_init_values(self) -> None:
        """Environment variables win over values loaded from a file."""
        with patch.dict(os.environ, {"LOCAL_ID": "from-env"}):
            config = ClientConfig(local_id="from-file")
            assert config.local_id == "from-env"

    def test_negative_reconnect_delay_rejected(self) -> None:
        with pytest.raises(ValueError):
            ClientConfig(reconnect_delay=-1)

    def test_display_dict(self) -> None:
        config = ClientConfig(local_host="http://localhost:8080")
        display = config.to_display_dict()
        assert display["local_host"] == "http://localhost:8080"
        assert set(display) == {
            "local_host",
            "cloud_websocket",
            "local_id",
            "reconnect_delay",
            "connect_timeout",
            "request_timeout",
            "log_level",
        }

    def test_log_level_normalized(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}):
            assert ClientConfig().log_level == "warning"

    def test_unknown_log_level_rejected(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "verbose"}):
            with pytest.raises(ValueError, match="log_level"):
                ClientConfig()

    def test_assignment_is_validated(self) -> None:
        config = ClientConfig()
        with pytest.raises(ValueError):
            config.reconnect_delay = -1
        assert config.reconnect_delay == 5.0


class TestApplyOverrides:
    """Test command line overrides."""

    def test_none_values_skipped(self) -> None:
        config = apply_overrides(ClientConfig(local_host="http://x"), {"local_host": None, "local_id": "cli"})
        assert config.local_host == "http://x"
        assert config.local_id == "cli"

    def test_override_beats_env(self) -> None:
        with patch.dict(os.environ, {"LOCAL_HOST": "http://from-env"}):
            config = apply_overrides(ClientConfig(), {"local_host": "http://from-cli"})
            assert config.local_host == "http://from-cli"

    def test_out_of_range_override_rejected(self) -> None:
        with pytest.raises(ValueError, match="reconnect_delay"):
            apply_overrides(ClientConfig(), {"reconnect_delay": -0.5})

    def test_unknown_log_level_override_rejected(self) -> None:
        with pytest.raises(ValueError):
            apply_overrides(ClientConfig(), {"log_level": "verbose"})


class TestConfigFiles:
    """Test loading config files."""

    def test_flatten_nested_sections(self) -> None:
        raw = {"local": {"host": "http://x", "id": "abc"}, "cloud": {"websocket": "ws://y"}}
        assert flatten_config(raw) == {
            "local_host": "http://x",
            "local_id": "abc",
            "cloud_websocket": "ws://y",
        }

    def test_load_yaml(self, tmp_path) -> None:
        path = tmp_path / "bridger.yaml"
        path.write_text(
            "local:\n  host: http://localhost:8080\n  id: yaml-id\n"
            "cloud:\n  websocket: wss://broker/ws\n"
            "reconnect_delay: 2\n"
        )
        config = load_config(path)
        assert config.local_host == "http://localhost:8080"
        assert config.local_id == "yaml-id"
        assert config.cloud_websocket == "wss://broker/ws"
        assert config.reconnect_delay == 2.0

    def test_load_toml(self, tmp_path) -> None:
        path = tmp_path / "bridger.toml"
        path.write_text('[local]\nhost = "http://localhost:9000"\n\n[cloud]\nwebsocket = "ws://b/ws"\n')
        config = load_config(path)
        assert config.local_host == "http://localhost:9000"
        assert config.cloud_websocket == "ws://b/ws"

    def test_default_config_yaml_in_working_directory(self, tmp_path) -> None:
        (tmp_path / "config.yaml").write_text("local:\n  host: http://from-default\n")
        assert load_config().local_host == "http://from-default"

    def test_no_config_file_is_fine(self) -> None:
        assert load_config().local_host == ""

    def test_env_overrides_file(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("local:\n  host: http://from-file\n")
        with patch.dict(os.environ, {"LOCAL_HOST": "http://from-env"}):
            assert load_config(path).local_host == "http://from-env"

    def test_unknown_keys_ignored(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("local:\n  host: http://x\nmetrics:\n  enabled: true\n")
        assert load_config(path).local_host == "http://x"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("local: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_from_file(path)

    def test_unsupported_format(self, tmp_path) -> None:
        path = tmp_path / "config.ini"
        path.write_text("[local]\n")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config_from_file(path)

    def test_non_mapping_rejected(self, tmp_path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config_from_file(path)


class TestValidateConfig:
    """Test required settings."""

    def test_valid(self) -> None:
        validate_config(ClientConfig(local_host="http://x", cloud_websocket="ws://y"))

    def test_missing_local_host(self) -> None:
        with pytest.raises(ConfigError, match="LOCAL_HOST"):
            validate_config(ClientConfig(cloud_websocket="ws://y"))

    def test_missing_cloud_websocket(self) -> None:
        with pytest.raises(ConfigError, match="CLOUD_WEBSOCKET"):
            validate_config(ClientConfig(local_host="http://x"))

    def test_blank_values_are_missing(self) -> None:
        with pytest.raises(ConfigError):
            validate_config(ClientConfig(local_host="   ", cloud_websocket="ws://y"))
