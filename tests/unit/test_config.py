"""
Unit tests for ServerConfig.
"""

import dataclasses
from pathlib import Path

import pytest

from geminiserver import ConfigError, ServerConfig


ENV_VARS = (
    "GEMINI_HOST", "GEMINI_PORT", "GEMINI_CONTENT_ROOT", "GEMINI_IDENTITY",
    "GEMINI_KEY", "GEMINI_IDENTITY_PASSPHRASE", "GEMINI_WORKERS",
    "GEMINI_TIMEOUT", "GEMINI_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "server.ini"
    path.write_text(text)
    return path


class TestDefaults:
    """Tests for the default configuration."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 1965
        assert config.index_file == "index.gmi"
        assert config.form_suffix == ".form"
        assert config.max_request_size == 1024
        assert config.show_hidden is False
        assert config.identity_path is None

    def test_defaults_are_valid(self):
        ServerConfig().validate()

    def test_frozen(self):
        config = ServerConfig()

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.port = 1966

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)


class TestFromFile:
    """Tests for ServerConfig.from_file()."""

    def test_flat_file(self, tmp_path):
        """Test a file without section header."""
        path = write(tmp_path, (
            "port = 1966\n"
            "content-root = /srv/gemini\n"
            "show_hidden = yes\n"
            "timeout = none\n"
            "identity-path = /etc/gemini/cert.p12\n"
        ))

        config = ServerConfig.from_file(path)

        assert config.port == 1966
        assert config.content_root == "/srv/gemini"
        assert config.show_hidden is True
        assert config.timeout is None
        assert config.identity_path == "/etc/gemini/cert.p12"

    def test_sectioned_file(self, tmp_path):
        path = write(tmp_path, "[server]\nhost = ::1\nmax_workers = 8\ntimeout = 2.5\n")

        config = ServerConfig.from_file(str(path))

        assert config.host == "::1"
        assert config.max_workers == 8
        assert config.timeout == 2.5

    def test_comments_allowed(self, tmp_path):
        path = write(tmp_path, "# capsule settings\nport = 1970\n; old style\n")

        assert ServerConfig.from_file(path).port == 1970

    def test_unset_keys_keep_defaults(self, tmp_path):
        config = ServerConfig.from_file(write(tmp_path, "port = 1966\n"))

        assert config.index_file == "index.gmi"
        assert config.min_workers == 4

    def test_percent_sign_in_value(self, tmp_path):
        """Test that values are not interpolated."""
        config = ServerConfig.from_file(write(tmp_path, "identity_passphrase = 100%sure\n"))

        assert config.identity_passphrase == "100%sure"

    def test_unknown_key(self, tmp_path):
        with pytest.raises(ConfigError, match="colour"):
            ServerConfig.from_file(write(tmp_path, "colour = blue\n"))

    def test_bad_int(self, tmp_path):
        with pytest.raises(ConfigError):
            ServerConfig.from_file(write(tmp_path, "port = lots\n"))

    def test_bad_bool(self, tmp_path):
        with pytest.raises(ConfigError):
            ServerConfig.from_file(write(tmp_path, "show_hidden = maybe\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ServerConfig.from_file(tmp_path / "nope.ini")

    def test_no_server_section(self, tmp_path):
        with pytest.raises(ConfigError):
            ServerConfig.from_file(write(tmp_path, "[other]\nport = 1\n"))

    def test_malformed(self, tmp_path):
        with pytest.raises(ConfigError):
            ServerConfig.from_file(write(tmp_path, "[server\nport = 1\n"))


class TestFromEnv:
    """Tests for ServerConfig.from_env()."""

    def test_defaults_without_env(self, clean_env):
        config = ServerConfig.from_env()

        assert config.port == 1965
        assert config.content_root == "content-root"

    def test_reads_env(self, clean_env):
        clean_env.setenv("GEMINI_PORT", "1970")
        clean_env.setenv("GEMINI_CONTENT_ROOT", "/srv/capsule")
        clean_env.setenv("GEMINI_IDENTITY", "/etc/id.pem")
        clean_env.setenv("GEMINI_WORKERS", "12")
        clean_env.setenv("GEMINI_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.port == 1970
        assert config.content_root == "/srv/capsule"
        assert config.identity_path == "/etc/id.pem"
        assert config.max_workers == 12
        assert config.log_level == "DEBUG"

    def test_bad_number(self, clean_env):
        clean_env.setenv("GEMINI_PORT", "not-a-port")

        with pytest.raises(ConfigError):
            ServerConfig.from_env()


class TestValidate:
    """Tests for ServerConfig.validate()."""

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"port": -1},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"queue_size": 0},
        {"max_request_size": 0},
        {"timeout": 0},
        {"form_suffix": ""},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ConfigError):
            ServerConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        """Test that port 0 (OS-assigned) is accepted."""
        ServerConfig(port=0).validate()

    def test_lowercase_log_level(self):
        ServerConfig(log_level="debug").validate()

    def test_no_timeout(self):
        ServerConfig(timeout=None).validate()
