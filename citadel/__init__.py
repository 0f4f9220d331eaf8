from .archs.config import CitadelConfig
from .archs.registry import AppRecord, AppRegistry
from .archs.storage import TenantStoreManager
from .core import validate_app_id

__all__ = ["CitadelConfig", "AppRecord", "AppRegistry", "TenantStoreManager", "validate_app_id"]
