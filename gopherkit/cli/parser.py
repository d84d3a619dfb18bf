"""
GopherKit CLI argument parser.

This module implements the command-line interface for GopherKit using argparse.
"""

import argparse
import importlib
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

from gopherkit.cli.utils import print_error
from gopherkit.core.exceptions import GopherKitError

try:
    __version__ = version("gopherkit")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)

# Command module mapping
COMMAND_MAP = {
    "install": "gopherkit.cli.commands.install",
    "uninstall": "gopherkit.cli.commands.uninstall",
    "use": "gopherkit.cli.commands.use",
    "current": "gopherkit.cli.commands.current",
    "list": "gopherkit.cli.commands.list",
    "list-remote": "gopherkit.cli.commands.list_remote",
    "cleanup": "gopherkit.cli.commands.cleanup",
    "alias": "gopherkit.cli.commands.alias",
}


class CLI:
    """GopherKit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="gopherkit",
            description="GopherKit - Go toolchain version manager",
            epilog='Use "gopherkit COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"GopherKit {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: $GOPHERKIT_HOME/config.yaml)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_install_command(subparsers)
        self._add_uninstall_command(subparsers)
        self._add_use_command(subparsers)
        self._add_current_command(subparsers)
        self._add_list_command(subparsers)
        self._add_list_remote_command(subparsers)
        self._add_cleanup_command(subparsers)
        self._add_alias_command(subparsers)

        return parser

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Download and install a Go version",
            description="Download, verify and install a Go version from the release mirror",
        )
        parser.add_argument("version", help="Version to install (e.g., 1.21.0, go1.22rc1, latest)")
        parser.add_argument("--use", action="store_true", help="Switch to the version after installing it")

    def _add_uninstall_command(self, subparsers):
        """Add 'uninstall' subcommand."""
        parser = subparsers.add_parser("uninstall", help="Remove an installed Go version")
        parser.add_argument("version", help="Version to remove")

    def _add_use_command(self, subparsers):
        """Add 'use' subcommand."""
        parser = subparsers.add_parser("use", help="Switch the active Go version")
        parser.add_argument("selector", help="Version, alias name, or 'system'")

    def _add_current_command(self, subparsers):
        """Add 'current' subcommand."""
        subparsers.add_parser(
            "current",
            help="Show the active Go version",
            description="Print the active version, 'system' or 'unknown'",
        )

    def _add_list_command(self, subparsers):
        """Add 'list' subcommand."""
        subparsers.add_parser("list", help="List installed Go versions and the system Go")

    def _add_list_remote_command(self, subparsers):
        """Add 'list-remote' subcommand."""
        parser = subparsers.add_parser("list-remote", help="List versions available for download")
        parser.add_argument(
            "--all",
            action="store_true",
            help="Include unstable releases and versions without a build for this platform",
        )

    def _add_cleanup_command(self, subparsers):
        """Add 'cleanup' subcommand."""
        parser = subparsers.add_parser(
            "cleanup",
            help="Remove old installed versions",
            description="Keep the newest N installed versions and remove the rest",
        )
        parser.add_argument(
            "--keep",
            type=int,
            metavar="N",
            help="Number of versions to keep (default: max_versions from config)",
        )
        parser.add_argument("--dry-run", action="store_true", help="Show what would be removed")

    def _add_alias_command(self, subparsers):
        """Add 'alias' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "alias",
            help="Manage version aliases",
            description="Create, update and share named pointers to installed versions",
        )
        self._alias_parser = parser
        alias_subparsers = parser.add_subparsers(dest="alias_command", metavar="COMMAND")

        create_parser = alias_subparsers.add_parser("create", help="Bind a name to an installed version")
        create_parser.add_argument("name", help="Alias name")
        create_parser.add_argument("version", help="Installed version")
        self._add_tag_flag(create_parser, "Tag the alias")
        self._add_policy_flags(create_parser)

        update_parser = alias_subparsers.add_parser("update", help="Change an alias's version or tags")
        update_parser.add_argument("name", help="Alias name")
        update_parser.add_argument("version", nargs="?", help="New installed version")
        self._add_tag_flag(update_parser, "Replace the alias's tags")

        alias_subparsers.add_parser("remove", help="Delete an alias").add_argument("name")
        alias_subparsers.add_parser("show", help="Show an alias and where it points").add_argument("name")

        list_parser = alias_subparsers.add_parser("list", help="List aliases, flagging dangling ones")
        list_parser.add_argument(
            "--version", dest="for_version", metavar="VERSION", help="Only aliases for VERSION"
        )
        list_parser.add_argument("--tag", metavar="TAG", help="Only aliases carrying TAG")

        alias_subparsers.add_parser(
            "suggest", help="Suggest unused alias names for a version"
        ).add_argument("version")

        bulk_parser = alias_subparsers.add_parser("bulk", help="Create aliases from NAME=VERSION pairs")
        bulk_parser.add_argument("pairs", nargs="+", metavar="NAME=VERSION")
        self._add_policy_flags(bulk_parser)

        export_parser = alias_subparsers.add_parser("export", help="Write aliases to a JSON file")
        export_parser.add_argument("path", type=Path, help="Output file")
        self._add_tag_flag(export_parser, "Only export aliases carrying TAG")

        import_parser = alias_subparsers.add_parser("import", help="Read aliases from a JSON file")
        import_parser.add_argument("path", type=Path, help="Input file")
        self._add_policy_flags(import_parser)

    @staticmethod
    def _add_tag_flag(parser, help_text):
        parser.add_argument(
            "--tag",
            action="append",
            dest="tags",
            metavar="TAG",
            help=f"{help_text} (can be used multiple times)",
        )

    @staticmethod
    def _add_policy_flags(parser):
        group = parser.add_mutually_exclusive_group()
        group.add_argument("--force", "-f", action="store_true", help="Overwrite existing aliases")
        group.add_argument("--no-override", action="store_true", help="Never overwrite existing aliases")

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        # Configure logging
        self._configure_logging(parsed_args)

        # Check if command specified
        if not parsed_args.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except GopherKitError as e:
            print_error(str(e), e.hint)
            if parsed_args.verbose:
                logger.debug(f"Error code: {e.code}", exc_info=True)
            return 1
        except Exception as e:
            logger.error(f"Error: {e}", exc_info=parsed_args.verbose)
            return 1

    def _configure_logging(self, args):
        """Configure logging based on verbose/quiet flags."""
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        if args.command == "alias" and not args.alias_command:
            logger.error("No alias sub-command specified")
            self._alias_parser.print_help()
            return 1

        module_name = COMMAND_MAP.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
