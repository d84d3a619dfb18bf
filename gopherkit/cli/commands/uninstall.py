"""
Uninstall command implementation.
"""

from gopherkit.cli.utils import build_manager, safe_print


def run(args) -> int:
    """
    Run the uninstall command.

    Args:
        args: Parsed command-line arguments with ``version``

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    dangling = [alias.name for alias in manager.aliases.list_by_version(args.version)]

    manager.uninstall(args.version)
    safe_print(f"✓ Uninstalled {args.version}")

    if dangling:
        safe_print(f"  Aliases now pointing at a missing version: {', '.join(dangling)}")
    return 0
