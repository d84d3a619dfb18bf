"""
Collaborator interfaces the core consumes but does not implement.

Terminal prompts and shell-profile editing are I/O concerns of the
embedding application. The core only calls these hooks, so tests can
inject fakes and run without a terminal.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

# question -> True to proceed
ConfirmationPrompt = Callable[[str], bool]


class ShellProfileWriter(ABC):
    """Persists a directory on the user's PATH for future shells."""

    @abstractmethod
    def ensure_path_entry(self, directory: Path) -> bool:
        """
        Make future shells resolve executables in ``directory`` early.

        Returns:
            True if the profile now contains the entry
        """
        raise NotImplementedError


class NullShellProfileWriter(ShellProfileWriter):
    """Writes nothing; the caller is expected to fix PATH by hand."""

    def ensure_path_entry(self, directory: Path) -> bool:
        return False
