"""
Plain ``key=value`` text records.

Used for the per-version metadata file and the active-version state file.
Blank lines and ``#`` comments are ignored; any other line without ``=`` is
an error, so truncated or foreign files are detected rather than misread.
"""

from typing import Dict, Mapping


class KeyValueFormatError(ValueError):
    """Raised when a key=value document cannot be parsed."""

    pass


def parse_key_value(text: str) -> Dict[str, str]:
    """
    Parse ``key=value`` lines into a dict.

    Example:
        >>> parse_key_value("version=go1.21.0\\nos=linux\\n")
        {'version': 'go1.21.0', 'os': 'linux'}
    """
    record: Dict[str, str] = {}
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise KeyValueFormatError(f"line {lineno}: expected key=value, got {line!r}")
        record[key] = value.strip()
    return record


def format_key_value(record: Mapping[str, object]) -> str:
    """Render a mapping as ``key=value`` lines, preserving order."""
    lines = []
    for key, value in record.items():
        text = str(value)
        if "\n" in text or "\r" in text:
            raise KeyValueFormatError(f"value for {key!r} contains a newline")
        lines.append(f"{key}={text}")
    return "\n".join(lines) + "\n"
