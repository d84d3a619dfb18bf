"""
Platform detection for GopherKit.

Reports the current OS and CPU architecture using the names Go release
files use (``linux``/``darwin``/``windows``, ``amd64``/``arm64``/``386``),
and knows which architecture spellings are equivalent.

Usage:
    from gopherkit.core.platform import detect_platform

    info = detect_platform()
    print(info)                       # linux/amd64
    print(info.archive_extension())   # .tar.gz
"""

import functools
import platform
from dataclasses import dataclass
from typing import Optional

# Canonical Go arch name -> spellings that mean the same CPU
ARCH_SYNONYMS = {
    "amd64": ("amd64", "x86_64", "x64"),
    "arm64": ("arm64", "aarch64"),
    "386": ("386", "i386", "i686", "x86"),
    "armv6l": ("armv6l", "arm", "armv7l"),
}

_OS_NAMES = {
    "linux": "linux",
    "darwin": "darwin",
    "macos": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
}


def canonical_arch(name: str) -> str:
    """
    Map an architecture spelling to Go's name for it.

    Unknown names are returned lower-cased and unchanged.

    Example:
        >>> canonical_arch("x86_64")
        'amd64'
    """
    lowered = name.strip().lower()
    for canonical, spellings in ARCH_SYNONYMS.items():
        if lowered in spellings:
            return canonical
    return lowered


def arch_matches(candidate: str, target: str) -> bool:
    """Check whether two architecture tokens name the same CPU."""
    return canonical_arch(candidate) == canonical_arch(target)


def arch_spellings(arch: str) -> tuple:
    """All spellings for an architecture, Go's own name first."""
    canonical = canonical_arch(arch)
    return ARCH_SYNONYMS.get(canonical, (canonical,))


@dataclass(frozen=True)
class PlatformInfo:
    """
    Operating system and architecture in Go naming.

    Attributes:
        os: 'linux', 'darwin', 'windows' or 'freebsd'
        arch: 'amd64', 'arm64', '386', 'armv6l', ...
    """

    os: str
    arch: str

    @classmethod
    def parse(cls, value: str) -> "PlatformInfo":
        """
        Build from an ``os/arch`` or ``os-arch`` string.

        Example:
            >>> PlatformInfo.parse("linux/x86_64")
            PlatformInfo(os='linux', arch='amd64')
        """
        for sep in ("/", "-"):
            if sep in value:
                os_name, arch = value.split(sep, 1)
                break
        else:
            raise ValueError(f"Expected OS/ARCH, got '{value}'")
        os_name = _OS_NAMES.get(os_name.strip().lower(), os_name.strip().lower())
        return cls(os=os_name, arch=canonical_arch(arch))

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    def archive_extension(self) -> str:
        """Extension of the release archive Go publishes for this OS."""
        return ".zip" if self.is_windows else ".tar.gz"

    def executable_name(self, name: str = "go") -> str:
        """Executable file name, with ``.exe`` on Windows."""
        return f"{name}.exe" if self.is_windows else name

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.

    Raises:
        RuntimeError: If the OS is not one Go publishes binaries for
    """
    system = platform.system().lower()
    os_name = _OS_NAMES.get(system)
    if os_name is None:
        raise RuntimeError(f"Unsupported operating system: {system}")

    return PlatformInfo(os=os_name, arch=canonical_arch(platform.machine()))


def clear_platform_cache():
    """Force the next detect_platform() call to re-detect."""
    detect_platform.cache_clear()


def resolve_platform(override: Optional[str] = None) -> PlatformInfo:
    """Use an explicit ``os/arch`` override when given, else detect."""
    if override:
        return PlatformInfo.parse(override)
    return detect_platform()


__all__ = [
    "ARCH_SYNONYMS",
    "PlatformInfo",
    "arch_matches",
    "arch_spellings",
    "canonical_arch",
    "clear_platform_cache",
    "detect_platform",
    "resolve_platform",
]
