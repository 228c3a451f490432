"""
=============================================================================
GREETER CLI ENTRY POINT
=============================================================================

    # Run with defaults ([::]:50051, 2 workers, 30s drain)
    python -m greeter

    # Custom port and pool size
    python -m greeter --port 50052 --workers 8

    # Shorter drain on shutdown, JSON access logs
    python -m greeter --drain-timeout 5 --log-format json

Precedence: command-line flags > GREETER_* environment variables > defaults.

Exit codes:
    0   Stopped normally (SIGTERM / Ctrl+C)
    1   Startup failed (e.g. port already in use)
    2   Invalid arguments or configuration

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, ServiceConfig
from .core import StartupError
from .lifecycle import LifecycleController


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    env_error = None
    try:
        defaults = ServiceConfig.from_env()
    except ValueError as e:
        defaults, env_error = ServiceConfig(), e

    parser = argparse.ArgumentParser(
        prog="greeter",
        description="Greeter gRPC service with a bounded worker pool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m greeter                          # Run with defaults
  python -m greeter --port 50052             # Custom port
  python -m greeter --workers 8              # 8 worker slots
  python -m greeter --drain-timeout 5        # 5s graceful drain
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Address to bind to (default: {defaults.host})",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on, 0 for any free port (default: {defaults.port})",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY AND SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=defaults.workers,
        help=f"Number of worker slots (default: {defaults.workers})",
    )

    parser.add_argument(
        "--drain-timeout",
        type=float,
        default=defaults.drain_timeout,
        help=f"Seconds to wait for in-flight calls on shutdown (default: {defaults.drain_timeout:g})",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level})",
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=defaults.log_format,
        help=f"Access log format (default: {defaults.log_format})",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"PyGreeter {__version__}",
    )

    if env_error is not None:
        parser.error(str(env_error))

    args = parser.parse_args(argv)
    args.force_stop_timeout = defaults.force_stop_timeout

    try:
        build_config(args).validate()
    except ValueError as e:
        parser.error(str(e))

    return args


def build_config(args: argparse.Namespace) -> ServiceConfig:
    """Translate parsed CLI arguments into a ServiceConfig."""
    return ServiceConfig(
        host=args.host,
        port=args.port,
        workers=args.workers,
        drain_timeout=args.drain_timeout,
        force_stop_timeout=args.force_stop_timeout,
        log_level=args.log_level,
        log_format=args.log_format,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the service until it is told to stop."""
    args = parse_args(argv)
    controller = LifecycleController(build_config(args))

    try:
        controller.serve()
    except StartupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
