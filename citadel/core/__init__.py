"""Core primitives shared by all Citadel layers."""

from .app_ids import APP_ID_PATTERN, is_valid_app_id, validate_app_id
from .errors import (
    CitadelError,
    ConfigError,
    GuardrailViolationError,
    InvalidAppIdError,
    LockHeldError,
    NotFoundError,
    PathEscapeError,
    StoreError,
    StoreInitError,
    UnknownAppError,
    UpstreamUnavailableError,
)

__all__ = [
    "APP_ID_PATTERN",
    "is_valid_app_id",
    "validate_app_id",
    "CitadelError",
    "ConfigError",
    "GuardrailViolationError",
    "InvalidAppIdError",
    "LockHeldError",
    "NotFoundError",
    "PathEscapeError",
    "StoreError",
    "StoreInitError",
    "UnknownAppError",
    "UpstreamUnavailableError",
]
