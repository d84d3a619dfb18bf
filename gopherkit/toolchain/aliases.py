"""
Aliases: memorable names ("stable", "prod") bound to installed Go versions.

Aliases are stored as one JSON object keyed by name::

    {
      "stable": {"name": "stable", "version": "go1.21.0",
                 "created_at": "...", "updated_at": "...", "tags": ["team"]}
    }

Each AliasManager owns its own cache, loaded once and guarded by a
read-write lock so threads embedding the manager can read concurrently.
Every mutation runs load-mutate-save under the advisory ``aliases`` file
lock and writes via temp-file-then-rename, so concurrent processes neither
lose updates nor observe a partial file.

An alias may outlive the version it points to. Such dangling aliases are
kept as they are and reported via ``is_dangling``.
"""

import json
import logging
import re
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from gopherkit.core.exceptions import (
    AliasAlreadyExistsError,
    AliasNotFoundError,
    AliasStoreError,
    InvalidAliasNameError,
    OperationCancelledError,
    VersionNotInstalledError,
)
from gopherkit.core.filesystem import atomic_write
from gopherkit.core.interfaces import ConfirmationPrompt
from gopherkit.core.locking import LockManager
from gopherkit.toolchain.version import normalize_version, parse_version

logger = logging.getLogger(__name__)

MAX_ALIAS_LENGTH = 50
_ALIAS_CHARSET = re.compile(r"^[A-Za-z0-9._-]+$")
_SEPARATORS = "._-"

RESERVED_NAMES = frozenset(
    {
        "system", "sys",
        "install", "uninstall", "use", "list", "list-remote", "alias",
        "current", "cleanup", "help", "version", "config", "remove",
        "delete", "add", "create", "update", "export", "import", "bulk",
        "suggest", "show", "status", "init", "setup", "env", "switch",
    }
)

COMMON_ALIAS_NAMES = (
    "stable", "latest", "dev", "development", "prod", "production",
    "test", "testing", "staging", "preview", "beta", "alpha", "rc",
    "lts", "current", "main", "master", "release", "nightly",
)


class AliasPolicy(Enum):
    """What to do when creating an alias whose name is taken."""

    INTERACTIVE = "interactive"
    FORCE = "force"
    ALLOW_OVERRIDE = "allow-override"
    NO_OVERRIDE = "no-override"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class Alias:
    """A named pointer to an installed version."""

    name: str
    version: str
    created_at: datetime
    updated_at: datetime
    tags: Set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Alias":
        """
        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """
        created_at = datetime.fromisoformat(data["created_at"])
        return cls(
            name=data["name"],
            version=data["version"],
            created_at=created_at,
            updated_at=datetime.fromisoformat(data.get("updated_at") or data["created_at"]),
            tags=set(data.get("tags") or []),
        )


@dataclass
class BulkAliasResult:
    """Outcome of create_bulk / import_file."""

    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def validate_alias_name(name: str) -> None:
    """
    Check an alias name.

    Raises:
        InvalidAliasNameError: If the name is empty, too long, uses
            characters outside [A-Za-z0-9._-], starts or ends with a
            separator, or is reserved
    """
    if not name:
        raise InvalidAliasNameError(name or "", "name cannot be empty")
    if len(name) > MAX_ALIAS_LENGTH:
        raise InvalidAliasNameError(name, f"longer than {MAX_ALIAS_LENGTH} characters")
    if not _ALIAS_CHARSET.match(name):
        raise InvalidAliasNameError(
            name, "only letters, digits, '.', '_' and '-' are allowed"
        )
    if name[0] in _SEPARATORS or name[-1] in _SEPARATORS:
        raise InvalidAliasNameError(name, "cannot start or end with '.', '_' or '-'")
    if name.lower() in RESERVED_NAMES:
        raise InvalidAliasNameError(name, "name is reserved")


def is_valid_alias_name(name: str) -> bool:
    try:
        validate_alias_name(name)
        return True
    except InvalidAliasNameError:
        return False


class ReadWriteLock:
    """Many concurrent readers or one writer. Not reentrant."""

    def __init__(self):
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._condition:
            while self._writer:
                self._condition.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @contextmanager
    def write(self):
        with self._condition:
            while self._writer or self._readers:
                self._condition.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._condition:
                self._writer = False
                self._condition.notify_all()


class AliasManager:
    """
    Create, update, remove and query aliases.

    Args:
        aliases_file: JSON file holding the alias map
        is_installed: Callback telling whether a normalized version is installed
        lock_manager: Provides the cross-process aliases lock (optional)
        confirm: Prompt used by the INTERACTIVE policy; absent means "no"

    Example:
        >>> manager = AliasManager(config.aliases_file, installer.is_installed)
        >>> manager.create("stable", "1.21.0", AliasPolicy.NO_OVERRIDE)
        >>> manager.get("stable").version
        'go1.21.0'
    """

    def __init__(
        self,
        aliases_file: Path,
        is_installed: Callable[[str], bool],
        lock_manager: Optional[LockManager] = None,
        confirm: Optional[ConfirmationPrompt] = None,
    ):
        self.aliases_file = Path(aliases_file)
        self.is_installed = is_installed
        self.lock_manager = lock_manager
        self.confirm = confirm
        self._aliases: Dict[str, Alias] = {}
        self._loaded = False
        self._rw = ReadWriteLock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, force: bool = False) -> None:
        """
        Read the aliases file into the cache.

        Only the first call reads the file unless ``force`` is set.

        Raises:
            AliasStoreError: If the file exists but is not a valid alias map
        """
        with self._rw.write():
            if self._loaded and not force:
                return
            self._aliases = self._read_file()
            self._loaded = True
        logger.debug(f"Loaded {len(self._aliases)} aliases from {self.aliases_file}")

    def save(self) -> None:
        """Write the cache to disk atomically."""
        with self._file_lock():
            self._write_file()

    def _read_file(self) -> Dict[str, Alias]:
        if not self.aliases_file.exists():
            return {}

        try:
            data = json.loads(self.aliases_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AliasStoreError(self.aliases_file, str(e)) from e

        if not isinstance(data, dict):
            raise AliasStoreError(self.aliases_file, "expected a JSON object")

        aliases = {}
        for name, record in data.items():
            try:
                alias = Alias.from_dict(record)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                raise AliasStoreError(self.aliases_file, f"bad record for '{name}': {e}") from e
            aliases[name] = alias
        return aliases

    def _write_file(self) -> None:
        with self._rw.read():
            payload = {name: alias.to_dict() for name, alias in sorted(self._aliases.items())}
        atomic_write(self.aliases_file, json.dumps(payload, indent=2) + "\n")
        logger.debug(f"Saved {len(payload)} aliases to {self.aliases_file}")

    def _file_lock(self):
        if self.lock_manager is None:
            return nullcontext()
        return self.lock_manager.aliases_lock()

    @contextmanager
    def _mutation(self):
        """Load-mutate-save under the cross-process lock."""
        with self._file_lock():
            self.load(force=True)
            yield
            self._write_file()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, name: str) -> Optional[Alias]:
        self._ensure_loaded()
        with self._rw.read():
            return self._aliases.get(name)

    def list(self) -> List[Alias]:
        """All aliases sorted by name."""
        self._ensure_loaded()
        with self._rw.read():
            return [self._aliases[name] for name in sorted(self._aliases)]

    def list_by_version(self, version: str) -> List[Alias]:
        normalized = normalize_version(version)
        return [alias for alias in self.list() if alias.version == normalized]

    def list_by_tag(self, tag: str) -> List[Alias]:
        return [alias for alias in self.list() if tag in alias.tags]

    def resolve(self, selector: str) -> Optional[str]:
        """Version an alias points to, or None if ``selector`` is not an alias."""
        alias = self.get(selector)
        return alias.version if alias else None

    def is_dangling(self, alias: Alias) -> bool:
        """True when the alias points at a version that is no longer installed."""
        return not self.is_installed(alias.version)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _require_installed(self, version: str) -> str:
        normalized = normalize_version(version)
        if not self.is_installed(normalized):
            raise VersionNotInstalledError(normalized)
        return normalized

    def _may_overwrite(self, existing: Alias, version: str, policy: AliasPolicy) -> bool:
        if policy in (AliasPolicy.FORCE, AliasPolicy.ALLOW_OVERRIDE):
            return True
        if policy is AliasPolicy.NO_OVERRIDE:
            return False
        if self.confirm is None:
            return False
        return bool(
            self.confirm(
                f"Alias '{existing.name}' already points to {existing.version}. "
                f"Overwrite it with {version}?"
            )
        )

    def _put(self, name: str, version: str, tags: Optional[Iterable[str]]) -> Alias:
        now = _now()
        with self._rw.write():
            existing = self._aliases.get(name)
            alias = Alias(
                name=name,
                version=version,
                created_at=existing.created_at if existing else now,
                updated_at=now,
                tags=set(tags) if tags is not None else (existing.tags if existing else set()),
            )
            self._aliases[name] = alias
        return alias

    def create(
        self,
        name: str,
        version: str,
        policy: AliasPolicy = AliasPolicy.INTERACTIVE,
        tags: Optional[Iterable[str]] = None,
    ) -> Alias:
        """
        Bind ``name`` to an installed version.

        Raises:
            InvalidAliasNameError: If the name fails validation
            InvalidVersionError: If the version cannot be parsed
            VersionNotInstalledError: If the version is not installed
            AliasAlreadyExistsError: If the name exists and policy is NO_OVERRIDE
            OperationCancelledError: If INTERACTIVE confirmation is declined
        """
        validate_alias_name(name)
        normalized = self._require_installed(version)

        with self._mutation():
            existing = self.get(name)
            if existing is not None:
                if policy is AliasPolicy.NO_OVERRIDE:
                    raise AliasAlreadyExistsError(name, existing.version)
                if not self._may_overwrite(existing, normalized, policy):
                    raise OperationCancelledError(f"Alias '{name}' was not changed")
                logger.info(f"Overwriting alias {name}: {existing.version} -> {normalized}")
            alias = self._put(name, normalized, tags)

        logger.info(f"Alias {name} -> {normalized}")
        return alias

    def update(
        self,
        name: str,
        version: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Alias:
        """
        Change an existing alias's version and/or tags.

        Raises:
            AliasNotFoundError: If the alias does not exist
            VersionNotInstalledError: If the new version is not installed
        """
        normalized = self._require_installed(version) if version is not None else None

        with self._mutation():
            existing = self.get(name)
            if existing is None:
                raise AliasNotFoundError(name)
            alias = self._put(name, normalized or existing.version, tags)

        logger.info(f"Updated alias {name} -> {alias.version}")
        return alias

    def remove(self, name: str) -> Alias:
        """
        Delete an alias.

        Raises:
            AliasNotFoundError: If the alias does not exist
        """
        with self._mutation():
            with self._rw.write():
                alias = self._aliases.pop(name, None)
            if alias is None:
                raise AliasNotFoundError(name)

        logger.info(f"Removed alias {name}")
        return alias

    def create_bulk(
        self,
        entries: Mapping[str, str],
        policy: AliasPolicy = AliasPolicy.INTERACTIVE,
    ) -> BulkAliasResult:
        """
        Create many aliases at once.

        Every entry is validated before anything changes; the first invalid
        name or missing version aborts the whole batch. Name conflicts are
        then handled per entry: NO_OVERRIDE or a declined prompt skips that
        entry instead of aborting.
        """
        prepared = [(name, version, None) for name, version in entries.items()]
        return self._apply_bulk(prepared, policy)

    def _apply_bulk(
        self,
        entries: List[Tuple[str, str, Optional[Set[str]]]],
        policy: AliasPolicy,
    ) -> BulkAliasResult:
        validated = []
        for name, version, tags in entries:
            validate_alias_name(name)
            validated.append((name, self._require_installed(version), tags))

        result = BulkAliasResult()
        if not validated:
            return result

        with self._mutation():
            for name, normalized, tags in validated:
                existing = self.get(name)
                if existing is None:
                    self._put(name, normalized, tags)
                    result.created.append(name)
                elif self._may_overwrite(existing, normalized, policy):
                    self._put(name, normalized, tags)
                    result.updated.append(name)
                else:
                    result.skipped.append(name)

        logger.info(
            f"Bulk alias: {len(result.created)} created, {len(result.updated)} updated, "
            f"{len(result.skipped)} skipped"
        )
        return result

    # ------------------------------------------------------------------
    # Suggestions and exchange
    # ------------------------------------------------------------------

    def suggest(self, version: str) -> List[str]:
        """
        Unused alias names for a version.

        Common role names come first, then names derived from the version
        (e.g. '1.21', 'go1.21', '1', 'go1').
        """
        identity = parse_version(version)
        used = {alias.name.lower() for alias in self.list()}

        candidates = list(COMMON_ALIAS_NAMES) + [
            identity.major_minor,
            f"go{identity.major_minor}",
            str(identity.major),
            f"go{identity.major}",
            str(identity),
            identity.normalized(),
            f"v{identity}",
        ]

        suggestions = []
        seen = set()
        for candidate in candidates:
            key = candidate.lower()
            if key in used or key in seen or not is_valid_alias_name(candidate):
                continue
            seen.add(key)
            suggestions.append(candidate)
        return suggestions

    def export(self, path: Path, tags: Optional[Iterable[str]] = None) -> int:
        """
        Write aliases (optionally only those carrying one of ``tags``) to JSON.

        Returns:
            Number of aliases exported
        """
        wanted = set(tags) if tags else None
        selected = [
            alias for alias in self.list() if wanted is None or alias.tags & wanted
        ]
        document = {
            "exported_at": _now().isoformat(),
            "aliases": [alias.to_dict() for alias in selected],
        }
        atomic_write(Path(path), json.dumps(document, indent=2) + "\n")
        logger.info(f"Exported {len(selected)} aliases to {path}")
        return len(selected)

    def import_file(
        self, path: Path, policy: AliasPolicy = AliasPolicy.NO_OVERRIDE
    ) -> BulkAliasResult:
        """
        Import an export document (or a plain name -> version map).

        Raises:
            AliasStoreError: If the file is not a recognizable alias document
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AliasStoreError(path, str(e)) from e

        entries: List[Tuple[str, str, Optional[Set[str]]]] = []
        try:
            if isinstance(data, dict) and isinstance(data.get("aliases"), list):
                for record in data["aliases"]:
                    entries.append(
                        (record["name"], record["version"], set(record.get("tags") or []))
                    )
            elif isinstance(data, dict):
                for name, version in data.items():
                    if not isinstance(version, str):
                        raise TypeError(f"version for '{name}' must be a string")
                    entries.append((name, version, None))
            else:
                raise TypeError("expected a JSON object")
        except (KeyError, TypeError) as e:
            raise AliasStoreError(path, str(e)) from e

        return self._apply_bulk(entries, policy)
