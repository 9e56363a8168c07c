"""Command-line entry for visitbot."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the visitbot CLI."""
    parser = argparse.ArgumentParser(
        prog="visitbot",
        description="visitbot - doctor visit calendar feed and reminder server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m visitbot                            # Start server on default port (8080)
  python -m visitbot --port 3000                # Start server on port 3000
  python -m visitbot --config visitbot.yaml     # Use an explicit config file
  python -m visitbot --dispatch-once            # Send due reminders once and exit
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or VISITBOT_WEB_PORT)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to the YAML config file (default: ./visitbot.yaml)",
    )
    parser.add_argument(
        "--dispatch-once",
        action="store_true",
        help="Run one reminder dispatch pass and exit instead of serving",
    )
    parser.add_argument(
        "--minutes-ahead",
        type=int,
        metavar="N",
        help="Reminder lookahead window for --dispatch-once (1..1440)",
    )

    return parser


def main() -> NoReturn:
    """Run the visitbot CLI."""
    parser = _create_parser()
    args = parser.parse_args()
    run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
