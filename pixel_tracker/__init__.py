from .app import create_app
from .config import ConfigError, Settings

__all__ = ["create_app", "ConfigError", "Settings"]
