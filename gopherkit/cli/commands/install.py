"""
Install command implementation.

Downloads, verifies and installs a Go version.
"""

import logging

from gopherkit.cli.utils import build_manager, format_bytes, print_warning, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments with:
            - version: Version to install, or 'latest'
            - use: Switch to the version afterwards

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)

    result = manager.install(args.version)
    safe_print(f"✓ Installed {result.version} to {result.install_dir}")

    cleanup = result.cleanup
    if cleanup is not None:
        if cleanup.removed:
            safe_print(
                f"  Auto-cleanup removed {', '.join(cleanup.removed)} "
                f"({format_bytes(cleanup.space_reclaimed)} reclaimed)"
            )
        if cleanup.partial_failure:
            print_warning(f"Auto-cleanup could not remove {', '.join(cleanup.failed)}")

    if args.use:
        manager.use(result.version)
        safe_print(f"✓ Now using {result.version}")
    else:
        safe_print(f"  Run 'gopherkit use {result.version}' to activate it")

    return 0
