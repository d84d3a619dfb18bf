"""
List-remote command implementation.

Shows versions published on the release mirror.
"""

import logging

from gopherkit.cli.utils import build_manager, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list-remote command.

    By default only stable versions with a build for this platform are
    shown; ``--all`` lists everything with annotations.

    Args:
        args: Parsed command-line arguments with ``all``

    Returns:
        Exit code (0 for success)
    """
    manager = build_manager(args)
    platform = manager.platform
    summaries = manager.list_available()

    shown = 0
    for summary in summaries:
        compatible = bool(summary.compatible_files(platform))
        if not args.all and not (summary.stable and compatible):
            continue

        notes = []
        if manager.is_installed(summary.version):
            notes.append("installed")
        if not summary.stable:
            notes.append("unstable")
        if not compatible:
            notes.append(f"no build for {platform}")

        suffix = f"  ({', '.join(notes)})" if notes else ""
        safe_print(f"{summary.version}{suffix}")
        shown += 1

    logger.debug(f"Listed {shown} of {len(summaries)} versions")
    if shown == 0:
        safe_print(f"No versions available for {platform}")
    return 0
