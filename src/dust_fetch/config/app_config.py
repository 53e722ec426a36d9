# src/dust_fetch/config/app_config.py
"""
Application Configuration for Dust Fetch
Centralized paths, network defaults and DLSite settings.
"""

import os
from pathlib import Path

# Project paths (automatically detected)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent  # Go up from src/dust_fetch/config/ to root
DEFAULT_DATA_ROOT = PROJECT_ROOT / "data"


class AppConfig:
    """Central configuration values and path helpers"""

    APP_NAME = "Dust Fetch"

    # Server configuration
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 5000

    # Logging configuration
    LOG_LEVEL = "INFO"
    LOG_MAX_SIZE = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Network configuration
    REQUEST_TIMEOUT = 30
    DOWNLOAD_TIMEOUT = 60
    MAX_ATTEMPTS = 3
    RETRY_DELAY = 2.0
    BATCH_CONCURRENCY = 3

    # VPN configuration
    SOCKS_PROXY_HOST = "127.0.0.1"
    SOCKS_PROXY_PORT = 1080
    VPN_CONNECT_TIMEOUT = 30
    VPN_TERMINATE_GRACE = 5
    VPN_PROXY_PROBE_URL = "https://httpbin.org/ip"
    VPN_PROXY_PROBE_TIMEOUT = 5

    # DLSite configuration
    DLSITE_DEFAULT_LOCALE = "en_US"  # or "ja_JP" for Japanese
    DLSITE_DEFAULT_CATEGORY = "maniax"
    DLSITE_DOWNLOAD_COVERS = True

    # File manager settings
    MAX_EXECUTABLE_SCAN_DEPTH = 3  # How deep to scan for executables

    # File extensions for executables
    EXECUTABLE_EXTENSIONS = {
        'windows': ['.exe', '.bat', '.cmd', '.msi'],
        'unix': ['.sh', '.run', '.AppImage', '.x86', '.x86_64'],
        'mac': ['.app', '.command', '.pkg'],
        'all': ['.jar', '.py', '.pyw']
    }

    @classmethod
    def get_data_root(cls) -> Path:
        """Get the data root, honouring the DUST_DATA_DIR override"""
        override = os.environ.get("DUST_DATA_DIR")
        return Path(override) if override else DEFAULT_DATA_ROOT

    @classmethod
    def _ensure_dir(cls, path: Path) -> str:
        path.mkdir(parents=True, exist_ok=True)
        return str(path)

    @classmethod
    def get_covers_dir(cls) -> str:
        """Get the covers directory path"""
        return cls._ensure_dir(cls.get_data_root() / "covers")

    @classmethod
    def get_logs_dir(cls) -> str:
        """Get the logs directory path"""
        return cls._ensure_dir(cls.get_data_root() / "logs")

    @classmethod
    def get_vpn_dir(cls) -> str:
        """Get the directory used for VPN credential files"""
        return cls._ensure_dir(cls.get_data_root() / "vpn")

    @staticmethod
    def get_relative_cover_path(filename: str) -> str:
        """Get relative path for cover image (stored in game records)"""
        return f"data/covers/{filename}"
