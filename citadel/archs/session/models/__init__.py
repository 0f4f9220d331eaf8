"""SQLModel tables stored in each app's database."""

from .app_setting import AppSettingModel
from .coordination_lock import CoordinationLockModel

__all__ = ["AppSettingModel", "CoordinationLockModel"]
