"""
=============================================================================
CLI ENTRY POINT
=============================================================================

Runs the demo application:

    python -m tinyserve                  # 127.0.0.1:3000
    python -m tinyserve --port 8000
    python -m tinyserve --host 0.0.0.0 --workers 8
    python -m tinyserve --log-format json --log-level DEBUG

    $ curl localhost:3000/ilia
    zd
    $ curl -X POST localhost:3000/ilia
    Method POST not allowed

Settings are read from the environment first (see
``ServerConfig.from_env``); command-line flags override them.

=============================================================================
"""

import argparse
import os
import sys

from . import __version__
from .config import ServerConfig
from .middleware import LoggingMiddleware
from .server import HttpServer


DEFAULT_PORT = 3000


def ilia(request, response):
    response.write_head(200, {"Content-Type": "text/plain"})
    response.end("zd")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinyserve",
        description="Minimal middleware-based HTTP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tinyserve                      # 127.0.0.1:3000
  python -m tinyserve --port 8000          # Custom port
  python -m tinyserve --host 0.0.0.0       # Listen on all interfaces
  python -m tinyserve --strict-chain       # Refuse requests with no middleware
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: $TINYSERVE_HOST or 127.0.0.1)",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help=f"Port to listen on (default: $TINYSERVE_PORT or {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: $TINYSERVE_WORKERS or 16)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / PIPELINE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: $TINYSERVE_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: $TINYSERVE_LOG_FORMAT or text)",
    )
    parser.add_argument(
        "--strict-chain",
        action="store_true",
        help="Answer 500 when a request arrives before any middleware is registered",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"tinyserve {__version__}",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    elif "TINYSERVE_PORT" not in os.environ:
        config.port = DEFAULT_PORT
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format
    config.strict_middleware_chain = config.strict_middleware_chain or args.strict_chain

    config.validate()
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        app = HttpServer.create(config)
        app.use(LoggingMiddleware(log_format=config.log_format))
        app.get("/ilia", ilia)
        app.listen(config.port, config.host, on_ready=lambda: print("Server is listening"))
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    app.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
