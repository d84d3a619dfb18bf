"""
Entry point for running GopherKit CLI as a module.

Usage: python -m gopherkit [command] [options]
"""

from gopherkit.cli.parser import main

if __name__ == "__main__":
    main()
