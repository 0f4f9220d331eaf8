"""Per-app coordination state: locks and settings."""

from .models import AppSettingModel, CoordinationLockModel
from .settings_service import DEFAULT_SETTINGS, SettingsService
from .task_lock_service import DEFAULT_LOCK_TTL, DEFAULT_SCOPE, TaskLockService

__all__ = [
    # Models
    "AppSettingModel",
    "CoordinationLockModel",
    # Coordination Lock
    "DEFAULT_LOCK_TTL",
    "DEFAULT_SCOPE",
    "TaskLockService",
    # Settings
    "DEFAULT_SETTINGS",
    "SettingsService",
]
