"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the Gemini server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m geminiserver --port 1966                        │
    │                                                                      │
    │   2. Configuration file (when --config is given)                    │
    │      └── python -m geminiserver --config capsule.ini               │
    │                                                                      │
    │   3. Environment variables (when no file is given)                  │
    │      └── GEMINI_PORT=1966 python -m geminiserver                   │
    │                                                                      │
    │   4. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONFIGURATION FILE FORMAT
=============================================================================

A flat key = value document, read with configparser. The [server]
section header is optional:

    host = 0.0.0.0
    port = 1965
    content-root = /srv/gemini
    identity = /etc/gemini/capsule.p12
    identity-passphrase = hunter2
    log-level = INFO

Keys are the ServerConfig field names; dashes and underscores are
interchangeable.

=============================================================================
IMMUTABILITY
=============================================================================

The config object is frozen. Every worker thread reads it, and none may
change it; the CLI builds a modified copy with dataclasses.replace()
instead of assigning to fields.

=============================================================================
"""

import os
import logging
import configparser
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional


class ConfigError(ValueError):
    """Raised for unreadable or invalid configuration."""


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "yes", "true", "on"):
        return True
    if lowered in ("0", "no", "false", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_optional_float(value: str) -> Optional[float]:
    if value.strip().lower() in ("", "none"):
        return None
    return float(value)


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the Gemini server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK      host, port, backlog, timeout, max_request_size
    CONTENT      content_root, index_file, form_suffix, show_hidden
    TLS          identity_path, key_path, identity_passphrase, hostname
    THREADING    min_workers, max_workers, queue_size
    LOGGING      log_level, log_format, log_file

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """The IP address to bind to. Use "::" for IPv6."""

    port: int = 1965
    """The port number to listen on. 1965 is the Gemini default."""

    backlog: int = 128
    """Maximum number of connections queued by the kernel."""

    timeout: Optional[float] = 30.0
    """
    Socket timeout in seconds, applied to the TLS handshake, the request
    read and the response write. A client that stalls longer is dropped.
    """

    max_request_size: int = 1024
    """Longest accepted request line in bytes, CRLF not included."""

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    content_root: str = "content-root"
    """Directory whose files are served."""

    index_file: str = "index.gmi"
    """Document served when a directory is requested."""

    form_suffix: str = ".form"
    """Files ending with this suffix are treated as input forms."""

    show_hidden: bool = False
    """List dot-files in generated directory listings."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    identity_path: Optional[str] = None
    """
    Server certificate. Either a PEM certificate chain (key in the same
    file or in key_path) or a PKCS#12 bundle (.p12 / .pfx). When unset,
    an ad-hoc self-signed certificate is generated.
    """

    key_path: Optional[str] = None
    """PEM private key, when it is not inside identity_path."""

    identity_passphrase: Optional[str] = None
    """Passphrase for an encrypted key or PKCS#12 bundle."""

    hostname: str = "localhost"
    """Common name of the ad-hoc certificate."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 32

    queue_size: int = 128
    """
    Connections allowed to wait for a free worker. Beyond this the
    server answers "41 Server unavailable".
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_format: str = "text"
    """Access log format: 'json' or 'text'."""

    log_file: Optional[str] = None
    """Log to this file instead of stderr (needed in daemon mode)."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        GEMINI_HOST                  Server host (default: 0.0.0.0)
        GEMINI_PORT                  Server port (default: 1965)
        GEMINI_CONTENT_ROOT          Directory to serve
        GEMINI_IDENTITY              Certificate (PEM or PKCS#12)
        GEMINI_KEY                   PEM private key
        GEMINI_IDENTITY_PASSPHRASE   Key / bundle passphrase
        GEMINI_WORKERS               Max worker threads (default: 32)
        GEMINI_TIMEOUT               Socket timeout in seconds (default: 30)
        GEMINI_LOG_LEVEL             Logging level (default: INFO)

        =====================================================================
        """
        try:
            return cls(
                host=os.getenv("GEMINI_HOST", "0.0.0.0"),
                port=int(os.getenv("GEMINI_PORT", "1965")),
                content_root=os.getenv("GEMINI_CONTENT_ROOT", "content-root"),
                identity_path=os.getenv("GEMINI_IDENTITY"),
                key_path=os.getenv("GEMINI_KEY"),
                identity_passphrase=os.getenv("GEMINI_IDENTITY_PASSPHRASE"),
                max_workers=int(os.getenv("GEMINI_WORKERS", "32")),
                timeout=float(os.getenv("GEMINI_TIMEOUT", "30")),
                log_level=os.getenv("GEMINI_LOG_LEVEL", "INFO"),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid environment configuration: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> "ServerConfig":
        """
        Load configuration from a flat key = value file.

        Raises:
            ConfigError: File unreadable, unknown key, or bad value.
        """
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        # A flat document without a header is treated as [server]
        if not text.lstrip().startswith("["):
            text = "[server]\n" + text

        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read_string(text, source=str(path))
        except configparser.Error as e:
            raise ConfigError(f"Malformed config file {path}: {e}") from e

        if not parser.has_section("server"):
            raise ConfigError(f"Config file {path} has no [server] section")

        converters = {
            "port": int,
            "backlog": int,
            "max_request_size": int,
            "min_workers": int,
            "max_workers": int,
            "queue_size": int,
            "timeout": _parse_optional_float,
            "show_hidden": _parse_bool,
        }
        known = {f.name for f in fields(cls)}

        values = {}
        for key, raw in parser.items("server"):
            name = key.replace("-", "_")
            if name not in known:
                raise ConfigError(f"Unknown config key {key!r} in {path}")
            try:
                values[name] = converters.get(name, str)(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {key!r} in {path}: {e}") from e

        return cls(**values)

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup, so a bad value stops the server before
        it binds a socket rather than on the first request.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ConfigError("queue_size must be >= 1")

        if self.max_request_size < 1:
            raise ConfigError("max_request_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")

        if not self.form_suffix:
            raise ConfigError("form_suffix must not be empty")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")

        if self.log_format not in ("text", "json"):
            raise ConfigError(f"log_format must be 'text' or 'json', not {self.log_format!r}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Immutable, type-checked configuration in a frozen dataclass
# 2. Loading from a configparser file or from GEMINI_* variables
# 3. Validation at startup (fail-fast)
#
# DEPLOYMENT CHECKLIST:
# □ Point identity at a long-lived certificate (clients pin it, TOFU)
# □ Keep the passphrase out of world-readable files
# □ Set log_file when running with --daemon
# =============================================================================
