"""
Go toolchain management.

Version parsing, release resolution, secure installation, switching and
aliases for Go SDK versions.
"""

from .aliases import Alias, AliasManager, AliasPolicy
from .installer import SecureInstaller
from .manager import InstalledVersion, InstallResult, VersionManager
from .resolver import DownloadInfo, ReleaseResolver
from .version import VersionIdentity, normalize_version, parse_version

__all__ = [
    "Alias",
    "AliasManager",
    "AliasPolicy",
    "SecureInstaller",
    "InstalledVersion",
    "InstallResult",
    "VersionManager",
    "DownloadInfo",
    "ReleaseResolver",
    "VersionIdentity",
    "normalize_version",
    "parse_version",
]
