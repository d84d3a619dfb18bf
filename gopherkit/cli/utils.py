"""Shared utilities for CLI commands."""

import logging
import sys
import time
from pathlib import Path
from typing import Optional

from gopherkit.core.config import load_config
from gopherkit.core.download import DownloadProgress, format_progress
from gopherkit.core.interfaces import ShellProfileWriter
from gopherkit.core.platform import detect_platform
from gopherkit.toolchain.aliases import AliasPolicy
from gopherkit.toolchain.manager import VersionManager

logger = logging.getLogger(__name__)


# ============================================================================
# Output Formatting
# ============================================================================


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_warning(message: str):
    """Print warning message to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


def safe_print(message: str, file=None):
    """Print, falling back to ASCII symbols where the console cannot encode them."""
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        safe_message = (
            message.replace("✓", "[OK]")
            .replace("✗", "[FAILED]")
            .replace("→", "->")
        )
        print(safe_message, file=file)


def format_bytes(size: int) -> str:
    """Human readable size, e.g. '64.3 MB'."""
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


# ============================================================================
# Interactive Hooks
# ============================================================================


def stdin_confirm(question: str) -> bool:
    """
    ConfirmationPrompt backed by stdin.

    Non-interactive sessions (no TTY, or EOF) count as a decline.
    """
    if not sys.stdin.isatty():
        logger.debug(f"Not a terminal, declining: {question}")
        return False
    try:
        response = input(f"{question} [y/N] ").strip().lower()
    except EOFError:
        return False
    return response in ("y", "yes")


class ProfileHintWriter(ShellProfileWriter):
    """Prints the line the user should add to their shell profile."""

    def __init__(self, windows: Optional[bool] = None, file=None):
        self.windows = detect_platform().is_windows if windows is None else windows
        self.file = file

    def export_line(self, directory: Path) -> str:
        if self.windows:
            return f'setx PATH "{directory};%PATH%"'
        return f'export PATH="{directory}:$PATH"'

    def ensure_path_entry(self, directory: Path) -> bool:
        safe_print(
            f"\nAdd {directory} to your PATH, e.g. in your shell profile:\n"
            f"  {self.export_line(directory)}",
            file=self.file or sys.stderr,
        )
        return False


class ProgressPrinter:
    """Download progress callback that redraws one line on stderr."""

    def __init__(self, interval: float = 0.5):
        self.interval = interval
        self._last = 0.0

    def __call__(self, progress: DownloadProgress):
        now = time.monotonic()
        finished = progress.total_bytes and progress.bytes_downloaded >= progress.total_bytes
        if not finished and now - self._last < self.interval:
            return
        self._last = now
        sys.stderr.write(f"\r  {format_progress(progress)}")
        if finished:
            sys.stderr.write("\n")
        sys.stderr.flush()


# ============================================================================
# Manager Construction
# ============================================================================


def build_manager(args) -> VersionManager:
    """
    Create a VersionManager from parsed CLI arguments.

    Args:
        args: Parsed arguments (uses ``config`` and ``quiet`` when present)

    Returns:
        VersionManager wired with terminal prompts and progress output

    Raises:
        ConfigError: If the configuration is invalid
    """
    config = load_config(getattr(args, "config", None))
    logger.debug(f"Using gopherkit home {config.home}")

    quiet = getattr(args, "quiet", False)
    return VersionManager(
        config,
        confirm=stdin_confirm,
        shell_writer=ProfileHintWriter(),
        progress_callback=None if quiet or not sys.stderr.isatty() else ProgressPrinter(),
    )


def alias_policy(args) -> AliasPolicy:
    """Map --force / --no-override flags to an AliasPolicy."""
    if getattr(args, "force", False):
        return AliasPolicy.FORCE
    if getattr(args, "no_override", False):
        return AliasPolicy.NO_OVERRIDE
    return AliasPolicy.INTERACTIVE

