"""
Core functionality for GopherKit.

This package contains the foundational modules that other components depend on:
configuration, directory layout, locking, downloads and persisted state.
"""

from .config import GopherKitConfig, load_config, save_config
from .directory import ensure_home_structure, get_home_dir
from .exceptions import GopherKitError
from .locking import LockManager
from .platform import PlatformInfo, detect_platform

__all__ = [
    "GopherKitConfig",
    "load_config",
    "save_config",
    "ensure_home_structure",
    "get_home_dir",
    "GopherKitError",
    "LockManager",
    "PlatformInfo",
    "detect_platform",
]
