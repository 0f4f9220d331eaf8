from .config_loader import CitadelConfig

__all__ = ["CitadelConfig"]
