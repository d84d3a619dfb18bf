"""
Unit tests for key=value records.
"""

import pytest

from gopherkit.core.keyvalue import KeyValueFormatError, format_key_value, parse_key_value


class TestParse:
    """Test parse_key_value."""

    def test_basic(self):
        """Test simple records."""
        assert parse_key_value("version=go1.21.0\nos=linux\n") == {
            "version": "go1.21.0",
            "os": "linux",
        }

    def test_comments_and_blank_lines(self):
        """Test comments and blanks are skipped and whitespace trimmed."""
        text = "# metadata\n\n  arch = amd64  \n"
        assert parse_key_value(text) == {"arch": "amd64"}

    def test_value_may_contain_equals(self):
        """Test only the first '=' separates."""
        assert parse_key_value("url=https://x/?a=b") == {"url": "https://x/?a=b"}

    @pytest.mark.parametrize("text", ["no separator", "=value"])
    def test_malformed(self, text):
        """Test lines without a key are errors."""
        with pytest.raises(KeyValueFormatError):
            parse_key_value(text)


class TestFormat:
    """Test format_key_value."""

    def test_preserves_order(self):
        """Test keys are written in insertion order."""
        assert format_key_value({"b": 1, "a": "x"}) == "b=1\na=x\n"

    def test_rejects_newlines(self):
        """Test values cannot smuggle extra lines."""
        with pytest.raises(KeyValueFormatError):
            format_key_value({"version": "go1.21.0\nos=evil"})
