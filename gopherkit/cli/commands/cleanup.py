"""
Cleanup command implementation.

Keeps the newest installed versions and removes the rest.
"""

import logging

from gopherkit.cli.utils import build_manager, format_bytes, print_error, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the cleanup command.

    Args:
        args: Parsed command-line arguments with:
            - keep: Number of versions to keep (None for config default)
            - dry_run: Only report what would be removed

    Returns:
        Exit code (0 for success, 1 if any removal failed)
    """
    if args.keep is not None and args.keep < 1:
        print_error("--keep must be at least 1")
        return 1

    manager = build_manager(args)
    result = manager.cleanup_old_versions(max_versions=args.keep, dry_run=args.dry_run)

    if not result.removed and not result.failed:
        safe_print("Nothing to clean up")
        return 0

    verb = "Would remove" if args.dry_run else "Removed"
    for version in result.removed:
        safe_print(f"  {verb} {version}")
    safe_print(f"{verb} {len(result.removed)} version(s), {format_bytes(result.space_reclaimed)}")

    if result.partial_failure:
        for error in result.errors:
            print_error(error)
        return 1
    return 0
