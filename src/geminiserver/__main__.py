"""
=============================================================================
COMMAND-LINE INTERFACE
=============================================================================

Entry point for running the server as a module or console script:

    python -m geminiserver [options]
    geminiserver [options]

Startup order matters:

    1. Load config (file, or environment), apply flag overrides
    2. Validate config and build the TLS context
       └── a wrong passphrase fails HERE, while stderr is still visible
    3. Build the server (resolves the content root)
    4. Detach if --daemon
    5. run() until SIGINT/SIGTERM

=============================================================================
"""

import argparse
import dataclasses
import os
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ConfigError, ServerConfig
from .daemon import daemonize
from .middleware import AccessLogMiddleware
from .server import GeminiServer
from .tls import TLSConfigurationError, create_tls_context


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geminiserver",
        description="Static Gemini capsule server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  geminiserver                               # Defaults, ad-hoc certificate
  geminiserver --config /etc/gemini.ini      # Settings from a file
  geminiserver --root ./capsule --port 1966  # Quick local test
  geminiserver --config capsule.ini --daemon --pid-file /run/gemini.pid
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONFIGURATION SOURCE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--config", "-c",
        metavar="PATH",
        help="Configuration file (default: read GEMINI_* environment variables)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # OVERRIDES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on")
    parser.add_argument("--root", "-r", metavar="DIR", help="Content root directory")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PROCESS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--daemon", "-d",
        action="store_true",
        help="Detach from the terminal (set log-file in the config)"
    )
    parser.add_argument("--pid-file", metavar="PATH", help="Write the daemon's pid here")

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"geminiserver {__version__}"
    )

    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Build the effective config from a file or the environment plus flags."""
    if args.config:
        config = ServerConfig.from_file(args.config)
    else:
        config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "content_root": args.root,
        "log_level": args.log_level,
    }
    config = dataclasses.replace(
        config, **{k: v for k, v in overrides.items() if v is not None}
    )

    if args.daemon:
        # The daemon runs from "/", so relative paths must be pinned now
        pinned = {
            name: os.path.abspath(getattr(config, name))
            for name in ("content_root", "identity_path", "key_path", "log_file")
            if getattr(config, name)
        }
        config = dataclasses.replace(config, **pinned)

    config.validate()
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        tls_context = create_tls_context(config)
        server = GeminiServer(config, tls_context=tls_context)
    except (ConfigError, TLSConfigurationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    server.use(AccessLogMiddleware(log_format=config.log_format))

    if args.daemon:
        daemonize(args.pid_file and os.path.abspath(args.pid_file))

    try:
        server.run()
    except OSError as e:
        # Typically the port is taken or privileged
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
