"""
Use command implementation.

Switches the active Go version (a version, an alias or 'system').
"""

from gopherkit.cli.utils import build_manager, safe_print


def run(args) -> int:
    """
    Run the use command.

    Args:
        args: Parsed command-line arguments with ``selector``

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    selection = manager.use(args.selector)

    link = manager.link_manager.current_link()
    safe_print(f"✓ Now using {selection.selected_version}")
    if link is not None:
        safe_print(f"  {link} → {manager.link_manager.current_target()}")
    return 0
