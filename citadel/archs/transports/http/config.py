"""HTTP transport configuration for Citadel.

This module provides configuration for the host's HTTP server.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class HTTPConfig:
    """Configuration for the Citadel HTTP server.

    Attributes:
        host: Host to bind to (default: 127.0.0.1)
        port: Port to bind to (default: 3000)
        cors_origins: List of allowed CORS origins (default: ["*"])
        cors_credentials: Allow credentials (default: False)
        log_level: Logging level (default: "info")
    """

    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    cors_credentials: bool = False
    log_level: str = "info"
