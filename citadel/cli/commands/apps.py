"""App registry CLI commands: list and check."""

from __future__ import annotations

import argparse
import json
import os
import sys

from dotenv import load_dotenv

from citadel.archs.registry import AppRegistry
from citadel.core.errors import ConfigError


def setup_parser(parser: argparse.ArgumentParser) -> None:
    """Configure the shared ``--registry`` argument.

    Args:
        parser: ArgumentParser instance
    """
    parser.add_argument(
        "--registry",
        type=str,
        default=None,
        help="App registry YAML (default: $CITADEL_REGISTRY_PATH)",
    )


def setup_list_parser(parser: argparse.ArgumentParser) -> None:
    setup_parser(parser)
    parser.add_argument(
        "--all",
        action="store_true",
        help="Include disabled apps",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of a table",
    )


def _registry_path(args: argparse.Namespace) -> str | None:
    load_dotenv()
    return args.registry or os.environ.get("CITADEL_REGISTRY_PATH") or None


def list_main(args: argparse.Namespace) -> int:
    """Print the apps in the registry.

    Returns:
        Exit code (0 = success, non-0 = error)
    """
    path = _registry_path(args)
    if path is None:
        print("❌ No registry given (use --registry or CITADEL_REGISTRY_PATH)", file=sys.stderr)
        return 1

    try:
        registry = AppRegistry.from_yaml(path)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    apps = registry.list_apps(include_disabled=args.all)
    if args.json:
        print(json.dumps([record.to_public_dict() for record in apps], indent=2))
        return 0

    if not apps:
        print("No apps registered.")
        return 0

    for record in apps:
        source = record.upstream_base_url or "local"
        flag = "" if record.enabled else " (disabled)"
        print(f"{record.id:<24} {record.name:<28} {source}{flag}")
    return 0


def check_main(args: argparse.Namespace) -> int:
    """Validate the registry file.

    Returns:
        Exit code (0 = valid, 1 = invalid)
    """
    path = _registry_path(args)
    if path is None:
        print("❌ No registry given (use --registry or CITADEL_REGISTRY_PATH)", file=sys.stderr)
        return 1

    try:
        registry = AppRegistry.from_yaml(path)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(f"✓ {path}: {len(registry)} app(s) valid")
    return 0
