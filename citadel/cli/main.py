"""Citadel CLI - Main dispatcher with serve and apps commands."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from citadel.cli.commands import apps, serve


def create_parser() -> argparse.ArgumentParser:
    """Create the main CLI parser with subcommands.

    Returns:
        Configured ArgumentParser with all subcommands
    """
    parser = argparse.ArgumentParser(
        prog="citadel",
        description="Citadel multi-app host CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=False,
    )

    # Serve command group: Server transport operations
    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the host server",
    )
    serve_subparsers = serve_parser.add_subparsers(
        dest="transport",
        required=True,
        help="Transport type",
    )

    # Serve HTTP: Start the FastAPI server
    serve_http = serve_subparsers.add_parser(
        "http",
        help="Start the HTTP server",
    )
    serve.setup_parser(serve_http)
    serve_http.set_defaults(func=serve.main)

    # Apps command group: Registry operations
    apps_parser = subparsers.add_parser(
        "apps",
        help="Inspect the app registry",
    )
    apps_subparsers = apps_parser.add_subparsers(
        dest="action",
        required=True,
        help="Registry action",
    )

    apps_list = apps_subparsers.add_parser(
        "list",
        help="List registered apps",
    )
    apps.setup_list_parser(apps_list)
    apps_list.set_defaults(func=apps.list_main)

    apps_check = apps_subparsers.add_parser(
        "check",
        help="Validate the registry file",
    )
    apps.setup_parser(apps_check)
    apps_check.set_defaults(func=apps.check_main)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 = success, non-0 = error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # If no command provided, show help
    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
