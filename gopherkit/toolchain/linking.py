"""
Switch indirection: the well-known ``go`` link that makes a version active.

Candidate link paths come from configuration as an ordered list; the first
one whose directory is writable wins. Where the OS refuses symlinks (e.g.
Windows without developer mode) a small shim script is written instead.
"""

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, MutableMapping, Optional, Sequence

from gopherkit.core.exceptions import PermissionDeniedError
from gopherkit.core.filesystem import is_within
from gopherkit.core.interfaces import ShellProfileWriter
from gopherkit.core.platform import PlatformInfo, detect_platform

logger = logging.getLogger(__name__)

SHIM_MARKER = "gopherkit shim"
_SHIM_TARGET = re.compile(r'"([^"]+)"')


class LinkType(Enum):
    """How the active executable is exposed."""

    SYMLINK = "symlink"
    SHIM = "shim"


@dataclass(frozen=True)
class LinkResult:
    path: Path
    link_type: LinkType
    target: Path


class SwitchLinkManager:
    """Points the well-known ``go`` link at a chosen executable."""

    def __init__(
        self,
        candidates: Sequence[Path],
        platform: Optional[PlatformInfo] = None,
        managed_root: Optional[Path] = None,
    ):
        if not candidates:
            raise ValueError("At least one link candidate is required")
        self.candidates = [Path(c) for c in candidates]
        self.platform = platform or detect_platform()
        self.managed_root = Path(managed_root) if managed_root else None

    def shim_path(self, candidate: Path) -> Path:
        """Where the shim for a candidate lives (``go.cmd`` on Windows)."""
        if self.platform.is_windows:
            return candidate.with_suffix(".cmd")
        return candidate

    def point_to(self, executable: Path) -> LinkResult:
        """
        Re-point the switch link at ``executable``.

        Candidates are tried in order; a symlink is preferred and a shim is
        written when the OS refuses symlinks in a writable directory.

        Raises:
            PermissionDeniedError: If no candidate location is usable
        """
        executable = Path(executable).absolute()
        failures: List[str] = []

        for candidate in self.candidates:
            if self._occupied_by_foreign_file(candidate):
                failures.append(f"{candidate}: existing file not managed by gopherkit")
                continue
            try:
                candidate.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                failures.append(f"{candidate.parent}: {e}")
                continue

            try:
                self._replace_symlink(candidate, executable)
                result = LinkResult(candidate, LinkType.SYMLINK, executable)
            except OSError as e:
                if not os.access(candidate.parent, os.W_OK):
                    failures.append(f"{candidate}: {e}")
                    continue
                logger.debug(f"Symlink refused at {candidate} ({e}), writing shim")
                try:
                    shim = self._write_shim(candidate, executable)
                except OSError as shim_error:
                    failures.append(f"{candidate}: {shim_error}")
                    continue
                result = LinkResult(shim, LinkType.SHIM, executable)

            self._remove_others(keep=result.path)
            logger.info(f"Linked {result.path} -> {executable}")
            return result

        for failure in failures:
            logger.debug(f"Link candidate rejected: {failure}")
        raise PermissionDeniedError(
            self.candidates[0],
            hint=(
                "No writable location for the go link. Check permissions on "
                + ", ".join(str(c.parent) for c in self.candidates)
                + " or set link_candidates in config.yaml"
            ),
        )

    def current_target(self) -> Optional[Path]:
        """Executable the first managed link or shim points at, if any."""
        for candidate in self.candidates:
            if self._points_into_root(candidate):
                return Path(os.readlink(candidate))
            target = self._read_shim(self.shim_path(candidate))
            if target is not None:
                return target
        return None

    def current_link(self) -> Optional[Path]:
        for candidate in self.candidates:
            if self._points_into_root(candidate):
                return candidate
            if self._read_shim(self.shim_path(candidate)) is not None:
                return self.shim_path(candidate)
        return None

    def remove(self) -> List[Path]:
        """Remove every managed link or shim; returns what was removed."""
        removed = []
        for candidate in self.candidates:
            for path in {candidate, self.shim_path(candidate)}:
                if self._is_managed(path):
                    path.unlink()
                    removed.append(path)
        return removed

    def ensure_on_path(
        self,
        directory: Path,
        shell_writer: Optional[ShellProfileWriter] = None,
        env: Optional[MutableMapping[str, str]] = None,
    ) -> bool:
        """
        Best effort: put ``directory`` on PATH for this session and future shells.

        Failures are warnings; the user may need to open a new shell.

        Returns:
            True if PATH already contained the directory or the profile was updated
        """
        env = os.environ if env is None else env
        current = env.get("PATH", "")
        wanted = os.path.normcase(os.path.abspath(directory))
        if any(
            os.path.normcase(os.path.abspath(entry)) == wanted
            for entry in current.split(os.pathsep)
            if entry
        ):
            return True

        env["PATH"] = str(directory) + (os.pathsep + current if current else "")
        logger.debug(f"Prepended {directory} to PATH for this process")

        if shell_writer is None:
            logger.warning(f"{directory} is not on your PATH; add it to your shell profile")
            return False

        try:
            persisted = shell_writer.ensure_path_entry(Path(directory))
        except OSError as e:
            logger.warning(f"Could not update shell profile: {e}")
            return False

        if not persisted:
            logger.warning(f"{directory} is not on your PATH; open a new shell after adding it")
        return persisted

    def _replace_symlink(self, link: Path, target: Path) -> None:
        temp = link.parent / f".{link.name}.{os.getpid()}.tmp"
        temp.unlink(missing_ok=True)
        os.symlink(target, temp)
        try:
            os.replace(temp, link)
        except OSError:
            temp.unlink(missing_ok=True)
            raise

    def _write_shim(self, candidate: Path, executable: Path) -> Path:
        shim = self.shim_path(candidate)
        if self.platform.is_windows:
            content = f'@echo off\r\nrem {SHIM_MARKER}\r\n"{executable}" %*\r\n'
        else:
            content = f'#!/bin/sh\n# {SHIM_MARKER}\nexec "{executable}" "$@"\n'

        temp = shim.parent / f".{shim.name}.{os.getpid()}.tmp"
        temp.write_text(content, encoding="utf-8", newline="")
        os.chmod(temp, 0o755)
        os.replace(temp, shim)
        return shim

    @staticmethod
    def _read_shim(path: Path) -> Optional[Path]:
        if path.is_symlink() or not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                head = f.read(4096)
        except (OSError, UnicodeDecodeError):
            return None
        if SHIM_MARKER not in head:
            return None
        match = _SHIM_TARGET.search(head.split(SHIM_MARKER, 1)[1])
        return Path(match.group(1)) if match else None

    def _is_managed(self, path: Path) -> bool:
        return self._points_into_root(path) or self._read_shim(path) is not None

    def _occupied_by_foreign_file(self, candidate: Path) -> bool:
        if not (candidate.exists() or candidate.is_symlink()):
            return False
        return not self._is_managed(candidate)

    def _points_into_root(self, path: Path) -> bool:
        """A symlink is ours if it lives in, or leads into, the managed root."""
        if not path.is_symlink():
            return False
        if self.managed_root is None:
            return True
        target = path.parent / os.readlink(path)
        return is_within(path.parent, self.managed_root) or is_within(target, self.managed_root)

    def _remove_others(self, keep: Path) -> None:
        for candidate in self.candidates:
            for path in {candidate, self.shim_path(candidate)}:
                if path == keep:
                    continue
                if self._is_managed(path):
                    try:
                        path.unlink()
                    except OSError as e:
                        logger.warning(f"Could not remove stale link {path}: {e}")
