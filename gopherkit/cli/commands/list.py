"""
List command implementation.

Shows installed versions and the system Go, marking the active one.
"""

from gopherkit.cli.utils import build_manager, safe_print


def run(args) -> int:
    """
    Run the list command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    entries = manager.list_installed()

    if not entries:
        safe_print("No Go versions installed")
        safe_print("  Run 'gopherkit install latest' to get started")
        return 0

    width = max(len(entry.version) for entry in entries)
    for entry in entries:
        marker = "*" if entry.is_active else " "
        if entry.is_managed:
            when = entry.installed_at.strftime("%Y-%m-%d") if entry.installed_at else "?"
            detail = f"installed {when}"
        else:
            detail = f"system, {entry.install_dir}"
        safe_print(f"{marker} {entry.version:<{width}}  {entry.os}/{entry.arch}  ({detail})")

    return 0
