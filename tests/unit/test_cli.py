"""
Unit tests for the command line entry point.
"""

import os

import pytest

from geminiserver import __version__
from geminiserver.__main__ import build_parser, load_config, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("GEMINI_"):
            monkeypatch.delenv(name)


class TestParser:
    """Tests for build_parser()."""

    def test_defaults(self):
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.port is None
        assert args.daemon is False

    def test_short_flags(self):
        args = build_parser().parse_args(["-p", "1966", "-r", "capsule", "-l", "DEBUG"])

        assert args.port == 1966
        assert args.root == "capsule"
        assert args.log_level == "DEBUG"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestLoadConfig:
    """Tests for load_config()."""

    def test_flags_override_file(self, tmp_path):
        path = tmp_path / "server.ini"
        path.write_text("port = 1970\nhost = 127.0.0.1\n")
        args = build_parser().parse_args(["--config", str(path), "--port", "1971"])

        config = load_config(args)

        assert config.port == 1971
        assert config.host == "127.0.0.1"

    def test_env_when_no_file(self, monkeypatch):
        monkeypatch.setenv("GEMINI_PORT", "1980")

        config = load_config(build_parser().parse_args([]))

        assert config.port == 1980

    def test_daemon_pins_paths(self):
        """Test that relative paths become absolute before the chdir."""
        args = build_parser().parse_args(["--daemon", "--root", "capsule"])

        config = load_config(args)

        assert config.content_root == os.path.abspath("capsule")
        assert config.identity_path is None

    def test_relative_paths_kept_without_daemon(self):
        config = load_config(build_parser().parse_args(["--root", "capsule"]))

        assert config.content_root == "capsule"


class TestMain:
    """Tests for main() error handling."""

    def test_missing_config_file(self, tmp_path, capsys):
        code = main(["--config", str(tmp_path / "missing.ini")])

        assert code == 1
        assert "Error:" in capsys.readouterr().err

    def test_invalid_port(self, capsys):
        code = main(["--port", "70000"])

        assert code == 1
        assert "Invalid port" in capsys.readouterr().err

    def test_bad_identity(self, tmp_path, capsys):
        path = tmp_path / "server.ini"
        path.write_text(f"identity_path = {tmp_path / 'missing.pem'}\n")

        code = main(["--config", str(path)])

        assert code == 1
        assert "Cannot load certificate" in capsys.readouterr().err

    def test_missing_content_root(self, tmp_path, certificate, capsys):
        certfile, keyfile = certificate
        path = tmp_path / "server.ini"
        path.write_text(
            f"identity_path = {certfile}\n"
            f"key_path = {keyfile}\n"
            f"content_root = {tmp_path / 'no-such-dir'}\n"
        )

        code = main(["--config", str(path)])

        assert code == 1
        assert "Content root" in capsys.readouterr().err
