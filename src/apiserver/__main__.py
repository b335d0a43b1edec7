"""
=============================================================================
API SERVER CLI ENTRY POINT
=============================================================================

    # Plain HTTP on 8080
    python -m apiserver

    # HTTPS on 8443
    python -m apiserver --tls --cert cert.pem --key key.pem

    # Custom port, verbose
    python -m apiserver --port 3000 --log-level DEBUG

Environment variables (API_HOST, API_PORT, API_TLS, ...) supply the
defaults; command-line flags override them. See ServerConfig.from_env().

Exit status is 1 when the server cannot start: bad configuration,
unreadable certificate or key, or an address that cannot be bound.

=============================================================================
"""

import argparse
import ssl
import sys
from typing import List, Optional

from . import __version__
from .config import ConfigError, ServerConfig
from .server import APIServer


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apiserver",
        description="Minimal HTTP/HTTPS user REST API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m apiserver                                  # HTTP on 8080
  python -m apiserver --port 3000                      # Custom port
  python -m apiserver --tls --cert c.pem --key k.pem   # HTTPS on 8443
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help="Port to listen on (default: 8080, or 8443 with --tls)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--tls",
        action="store_true",
        default=defaults.tls,
        help="Serve HTTPS (requires --cert and --key)"
    )

    parser.add_argument(
        "--cert",
        default=defaults.certfile,
        help="PEM certificate chain"
    )

    parser.add_argument(
        "--key",
        default=defaults.keyfile,
        help="PEM private key"
    )

    # ─────────────────────────────────────────────────────────────────────
    # BEHAVIOUR ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=defaults.read_timeout,
        help="Handshake/read/write timeout in seconds (default: 30)"
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"apiserver {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    return ServerConfig(
        host=args.host,
        port=args.port,
        tls=args.tls,
        certfile=args.cert,
        keyfile=args.key,
        handshake_timeout=args.timeout,
        read_timeout=args.timeout,
        write_timeout=args.timeout,
        log_level=args.log_level,
    )


def main(argv: Optional[List[str]] = None) -> None:
    try:
        defaults = ServerConfig.from_env()
    except ValueError as e:
        print(f"Error: invalid environment: {e}", file=sys.stderr)
        sys.exit(1)

    args = build_parser(defaults).parse_args(argv)

    try:
        server = APIServer(config_from_args(args))
        server.run()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ssl.SSLError) as e:
        print(f"Error: failed to start server: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
