"""
SHA-256 verification helpers.

Hashes are compared in constant time, and malformed expected hashes are
rejected up front rather than silently never matching.
"""

import hashlib
import logging
import re
import secrets
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class StreamingHasher:
    """Compute a SHA-256 incrementally while bytes are streamed to disk."""

    def __init__(self):
        self.hasher = hashlib.sha256()

    def update(self, data: bytes):
        self.hasher.update(data)

    def hexdigest(self) -> str:
        return self.hasher.hexdigest()

    def matches(self, expected_hash: str) -> bool:
        return constant_time_compare(self.hexdigest(), expected_hash.lower())


def is_valid_sha256(value: str) -> bool:
    """Check that a string is 64 lowercase-able hex characters."""
    return bool(value) and SHA256_PATTERN.match(value.strip().lower()) is not None


def compute_file_hash(
    file_path: Path,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> str:
    """
    Compute the SHA-256 of a file.

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    hasher = hashlib.sha256()
    file_size = file_path.stat().st_size
    bytes_read = 0

    with open(file_path, "rb") as f:
        while chunk := f.read(65536):
            hasher.update(chunk)
            bytes_read += len(chunk)
            if progress_callback:
                progress_callback(bytes_read, file_size)

    return hasher.hexdigest()


def verify_file_hash(file_path: Path, expected_hash: str) -> bool:
    """
    Verify file matches expected SHA-256 using constant-time comparison.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If expected_hash is not a SHA-256 hex digest
    """
    expected_hash = expected_hash.strip().lower()
    if not is_valid_sha256(expected_hash):
        raise ValueError(f"Invalid SHA-256 hash: {expected_hash!r}")

    return constant_time_compare(compute_file_hash(file_path), expected_hash)


def constant_time_compare(a: str, b: str) -> bool:
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
