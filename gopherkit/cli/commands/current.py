"""
Current command implementation.
"""

from gopherkit.cli.utils import build_manager


def run(args) -> int:
    """Print the active version, 'system' or 'unknown'."""
    manager = build_manager(args)
    print(manager.current())
    return 0
