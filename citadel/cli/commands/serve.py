"""HTTP serve CLI command.

This module provides the command that starts the Citadel host over HTTP.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from citadel.archs.config import CitadelConfig
from citadel.archs.transports.http import CitadelHTTPServer, HTTPConfig
from citadel.core.errors import ConfigError


class ServerArgs(BaseModel):
    """Validated arguments for the HTTP serve command."""

    host: str
    port: int
    log_level: str
    cors_origins: list[str]
    data_root: str | None = None
    registry: str | None = None


def setup_parser(parser: argparse.ArgumentParser) -> None:
    """Configure arguments for the HTTP serve command.

    Args:
        parser: ArgumentParser instance
    """
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port to bind to (default: 3000)",
    )
    parser.add_argument(
        "--data-root",
        type=str,
        default=None,
        help="Data root for per-app storage (default: $CITADEL_DATA_ROOT or ./data)",
    )
    parser.add_argument(
        "--registry",
        type=str,
        default=None,
        help="App registry YAML (default: $CITADEL_REGISTRY_PATH)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--cors-origins",
        type=str,
        nargs="+",
        default=["*"],
        help="Allowed CORS origins (default: *)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose output (sets log level to debug)",
    )


def configure_logging(log_level: str) -> None:
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,  # Override any existing configuration
    )


def build_citadel_config(data_root: str | None, registry: str | None) -> CitadelConfig:
    """Environment config with command line overrides applied."""
    config = CitadelConfig.from_env()
    overrides: dict[str, object] = {}
    if data_root:
        overrides["data_root"] = Path(data_root).expanduser()
    if registry:
        overrides["registry_path"] = Path(registry).expanduser()
    return config.model_copy(update=overrides) if overrides else config


def main(args: argparse.Namespace) -> int:
    """Execute the HTTP serve command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 = success, non-0 = error)
    """
    # Load environment variables from .env file
    load_dotenv()

    log_level = "debug" if args.verbose else args.log_level
    configure_logging(log_level)

    server_args = ServerArgs(
        host=args.host,
        port=args.port,
        log_level=log_level,
        cors_origins=args.cors_origins,
        data_root=args.data_root,
        registry=args.registry,
    )

    try:
        citadel_config = build_citadel_config(server_args.data_root, server_args.registry)
        server = CitadelHTTPServer(
            citadel_config=citadel_config,
            config=HTTPConfig(
                host=server_args.host,
                port=server_args.port,
                log_level=server_args.log_level,
                cors_origins=server_args.cors_origins,
            ),
        )
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print("=" * 60)
    print("🚀 Citadel Host Starting")
    print("=" * 60)
    print(f"Data root:    {citadel_config.data_root}")
    print(f"Registry:     {citadel_config.registry_path or '(empty)'} ({len(server.registry)} app(s))")
    print(f"Host:         {server.host}")
    print(f"Port:         {server.port}")
    print(f"Log Level:    {server_args.log_level}")
    print()
    print("📋 Endpoints:")
    print(f"   Health:     {server.health_url}")
    print(f"   Apps:       http://{server.host}:{server.port}/api/apps")
    print("=" * 60)
    print()

    try:
        server.run()
    except KeyboardInterrupt:
        print("\n\n🛑 Server stopped by user")
        return 0
    except Exception as e:
        print(f"\n\n❌ Error starting server: {e}", file=sys.stderr)
        return 1

    return 0
