"""App registry: which apps exist and where they are served."""

from .models import ALLOWED_PERMISSIONS, DEFAULT_HEALTH_PATH, AppRecord
from .registry import AppRegistry, load_registry_file

__all__ = [
    "ALLOWED_PERMISSIONS",
    "DEFAULT_HEALTH_PATH",
    "AppRecord",
    "AppRegistry",
    "load_registry_file",
]
