"""
Alias command implementation.

Dispatches the ``alias`` sub-commands to the AliasManager.
"""

import logging

from gopherkit.cli.utils import alias_policy, build_manager, print_error, safe_print
from gopherkit.core.exceptions import AliasNotFoundError

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run an alias sub-command.

    Args:
        args: Parsed command-line arguments with ``alias_command``

    Returns:
        Exit code (0 for success)
    """
    handlers = {
        "create": _create,
        "update": _update,
        "remove": _remove,
        "show": _show,
        "list": _list,
        "suggest": _suggest,
        "bulk": _bulk,
        "export": _export,
        "import": _import,
    }
    handler = handlers.get(args.alias_command)
    if handler is None:
        print_error(f"Unknown alias command: {args.alias_command}")
        return 1

    manager = build_manager(args)
    return handler(manager, args)


def _create(manager, args) -> int:
    alias = manager.aliases.create(
        args.name, args.version, policy=alias_policy(args), tags=args.tags
    )
    safe_print(f"✓ {alias.name} → {alias.version}")
    return 0


def _update(manager, args) -> int:
    if args.version is None and args.tags is None:
        print_error("Nothing to update", "Give a new version and/or --tag")
        return 1
    alias = manager.aliases.update(args.name, version=args.version, tags=args.tags)
    safe_print(f"✓ {alias.name} → {alias.version}")
    return 0


def _remove(manager, args) -> int:
    alias = manager.aliases.remove(args.name)
    safe_print(f"✓ Removed {alias.name} (was {alias.version})")
    return 0


def _show(manager, args) -> int:
    alias = manager.aliases.get(args.name)
    if alias is None:
        raise AliasNotFoundError(args.name)

    safe_print(f"{alias.name} → {alias.version}")
    safe_print(f"  created: {alias.created_at.isoformat()}")
    safe_print(f"  updated: {alias.updated_at.isoformat()}")
    if alias.tags:
        safe_print(f"  tags:    {', '.join(sorted(alias.tags))}")
    if manager.aliases.is_dangling(alias):
        safe_print(f"  {alias.version} is not installed")
    return 0


def _list(manager, args) -> int:
    if args.for_version:
        aliases = manager.aliases.list_by_version(args.for_version)
    else:
        aliases = manager.aliases.list()
    if args.tag:
        aliases = [alias for alias in aliases if args.tag in alias.tags]

    if not aliases:
        safe_print("No aliases defined")
        return 0

    width = max(len(alias.name) for alias in aliases)
    for alias in aliases:
        notes = []
        if alias.tags:
            notes.append(f"tags: {', '.join(sorted(alias.tags))}")
        if manager.aliases.is_dangling(alias):
            notes.append("not installed")
        suffix = f"  ({'; '.join(notes)})" if notes else ""
        safe_print(f"{alias.name:<{width}} → {alias.version}{suffix}")
    return 0


def _suggest(manager, args) -> int:
    suggestions = manager.aliases.suggest(args.version)
    if not suggestions:
        safe_print("No unused alias names to suggest")
        return 0
    safe_print(", ".join(suggestions))
    return 0


def _bulk(manager, args) -> int:
    entries = {}
    for pair in args.pairs:
        name, sep, version = pair.partition("=")
        if not sep or not name or not version:
            print_error(f"Invalid pair: {pair!r}", "Use NAME=VERSION")
            return 1
        entries[name] = version

    result = manager.aliases.create_bulk(entries, policy=alias_policy(args))
    _report_bulk(result)
    return 0


def _export(manager, args) -> int:
    count = manager.aliases.export(args.path, tags=args.tags)
    safe_print(f"✓ Exported {count} alias(es) to {args.path}")
    return 0


def _import(manager, args) -> int:
    result = manager.aliases.import_file(args.path, policy=alias_policy(args))
    _report_bulk(result)
    return 0


def _report_bulk(result) -> None:
    if result.created:
        safe_print(f"✓ Created: {', '.join(result.created)}")
    if result.updated:
        safe_print(f"✓ Updated: {', '.join(result.updated)}")
    if result.skipped:
        safe_print(f"  Skipped (already exist): {', '.join(result.skipped)}")
    if not (result.created or result.updated or result.skipped):
        safe_print("No aliases to import")
