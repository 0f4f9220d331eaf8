"""HTTP transport for the Citadel host.

This module provides:
- The FastAPI server exposing app health, selftest, lock, settings and proxy endpoints
- Request/response models for the API
"""

from citadel.archs.transports.http.config import HTTPConfig
from citadel.archs.transports.http.models import ErrorResponse, HealthResponse, LockAcquireRequest
from citadel.archs.transports.http.server import CitadelHTTPServer

__all__ = [
    "CitadelHTTPServer",
    "ErrorResponse",
    "HTTPConfig",
    "HealthResponse",
    "LockAcquireRequest",
]
