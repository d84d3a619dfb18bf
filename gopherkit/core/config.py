"""YAML configuration for GopherKit.

Values are layered: built-in defaults, then ``<home>/config.yaml``, then
``GOPHERKIT_*`` environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import yaml

from gopherkit.core.directory import get_home_dir
from gopherkit.core.exceptions import ConfigError
from gopherkit.core.filesystem import atomic_write
from gopherkit.core.platform import PlatformInfo, detect_platform

logger = logging.getLogger(__name__)

DEFAULT_MIRROR_URL = "https://go.dev/dl/"
DEFAULT_MAX_FILE_SIZE = 1 << 30
CONFIG_FILENAME = "config.yaml"

_KNOWN_KEYS = {
    "mirror_url",
    "auto_cleanup",
    "max_versions",
    "request_timeout",
    "max_file_size",
    "link_candidates",
    "keep_downloads",
}

_ENV_OVERRIDES = {
    "GOPHERKIT_MIRROR_URL": "mirror_url",
    "GOPHERKIT_AUTO_CLEANUP": "auto_cleanup",
    "GOPHERKIT_MAX_VERSIONS": "max_versions",
    "GOPHERKIT_REQUEST_TIMEOUT": "request_timeout",
}


def default_link_candidates(
    home: Path, platform: PlatformInfo, env: Optional[Mapping[str, str]] = None
) -> List[Path]:
    """
    Ordered switch-link locations tried by ``use``.

    The first writable candidate wins.
    """
    env = os.environ if env is None else env
    exe = platform.executable_name("go")

    if platform.is_windows:
        candidates = []
        local_app_data = env.get("LOCALAPPDATA")
        if local_app_data:
            candidates.append(Path(local_app_data) / "gopherkit" / "bin" / exe)
        candidates.append(home / "bin" / exe)
        return candidates

    return [home / "bin" / exe, Path.home() / ".local" / "bin" / exe]


@dataclass
class GopherKitConfig:
    """Resolved settings plus the on-disk layout derived from ``home``."""

    home: Path
    mirror_url: str = DEFAULT_MIRROR_URL
    auto_cleanup: bool = True
    max_versions: int = 5
    request_timeout: float = 30.0
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    keep_downloads: bool = True
    link_candidates: List[Path] = field(default_factory=list)

    @property
    def versions_dir(self) -> Path:
        return self.home / "versions"

    @property
    def downloads_dir(self) -> Path:
        return self.home / "downloads"

    @property
    def state_dir(self) -> Path:
        return self.home / "state"

    @property
    def state_file(self) -> Path:
        return self.state_dir / "active-version"

    @property
    def lock_dir(self) -> Path:
        return self.home / "lock"

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    @property
    def aliases_file(self) -> Path:
        return self.home / "aliases.json"

    @property
    def config_file(self) -> Path:
        return self.home / CONFIG_FILENAME

    def to_dict(self) -> Dict[str, Any]:
        """Serializable settings (paths as strings, layout excluded)."""
        return {
            "mirror_url": self.mirror_url,
            "auto_cleanup": self.auto_cleanup,
            "max_versions": self.max_versions,
            "request_timeout": self.request_timeout,
            "max_file_size": self.max_file_size,
            "keep_downloads": self.keep_downloads,
            "link_candidates": [str(p) for p in self.link_candidates],
        }


def load_config(
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    platform: Optional[PlatformInfo] = None,
) -> GopherKitConfig:
    """
    Load configuration from file and environment.

    Args:
        config_path: Explicit YAML file (default: <home>/config.yaml, optional)
        env: Environment mapping (default: os.environ)
        platform: Platform used for default link candidates

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the file or an override is invalid
    """
    env = os.environ if env is None else env
    home = get_home_dir(env)
    platform = platform or detect_platform()

    explicit = config_path is not None
    config_path = Path(config_path) if explicit else home / CONFIG_FILENAME

    data: Dict[str, Any] = {}
    if config_path.exists():
        data = _read_yaml(config_path)
        logger.debug(f"Loaded configuration from {config_path}")
    elif explicit:
        raise ConfigError(f"Configuration file not found: {config_path}")

    for env_var, key in _ENV_OVERRIDES.items():
        if env_var in env:
            data[key] = env[env_var]
            logger.debug(f"{key} overridden by {env_var}")

    return _parse_and_validate(data, home, platform, env)


def save_config(config: GopherKitConfig, config_path: Optional[Path] = None) -> Path:
    """Write settings to YAML atomically and return the path written."""
    config_path = Path(config_path) if config_path else config.config_file
    atomic_write(config_path, yaml.safe_dump(config.to_dict(), sort_keys=True))
    return config_path


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {config_path} must be a mapping")
    return data


def _parse_and_validate(
    data: Dict[str, Any],
    home: Path,
    platform: PlatformInfo,
    env: Mapping[str, str],
) -> GopherKitConfig:
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    config = GopherKitConfig(home=home)

    if "mirror_url" in data:
        config.mirror_url = _parse_mirror_url(data["mirror_url"])
    if "auto_cleanup" in data:
        config.auto_cleanup = _parse_bool("auto_cleanup", data["auto_cleanup"])
    if "max_versions" in data:
        config.max_versions = _parse_int("max_versions", data["max_versions"], 1)
    if "request_timeout" in data:
        config.request_timeout = _parse_float(
            "request_timeout", data["request_timeout"]
        )
    if "max_file_size" in data:
        config.max_file_size = _parse_int("max_file_size", data["max_file_size"], 1)
    if "keep_downloads" in data:
        config.keep_downloads = _parse_bool("keep_downloads", data["keep_downloads"])

    candidates = data.get("link_candidates")
    if candidates is None:
        config.link_candidates = default_link_candidates(home, platform, env)
    else:
        if not isinstance(candidates, list) or not candidates:
            raise ConfigError("link_candidates must be a non-empty list of paths")
        config.link_candidates = [Path(str(p)).expanduser() for p in candidates]

    return config


def _parse_mirror_url(value: Any) -> str:
    url = str(value).strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"mirror_url must be an http(s) URL, got '{url}'")
    return url if url.endswith("/") else url + "/"


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got '{value}'")


def _parse_int(name: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got '{value}'")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got '{value}'")
    if number < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {number}")
    return number


def _parse_float(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got '{value}'")
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {number}")
    return number
