from .app_config import AppConfig

__all__ = ['AppConfig']
