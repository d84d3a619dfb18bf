"""
Go version identity: parsing, normalization and total ordering.

Accepted forms (an optional ``go`` prefix is tolerated)::

    1.21.0      1.21      1.21.0rc1      go1.22rc2      1.21.0-beta.1

Ordering is major, minor, patch numerically; a release sorts after all of
its prereleases (rc > beta > alpha by lexicographic order of the tag).
Within a prerelease, numeric tokens compare as numbers and sort before
textual tokens at the same position.

Example:
    >>> parse_version("go1.21.0rc1") < parse_version("1.21.0")
    True
    >>> normalize_version("1.21.0")
    'go1.21.0'
"""

import functools
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple, Union

from gopherkit.core.exceptions import InvalidVersionError

VERSION_PREFIX = "go"

PrereleaseToken = Union[int, str]

_NUMERIC_PART = re.compile(r"^(?P<numbers>[0-9]+(?:\.[0-9]+)*)(?P<rest>.*)$")
_PRERELEASE = re.compile(r"^-?(?:alpha|beta|rc)(?:[.-]?[a-z0-9])*$")
_TOKEN = re.compile(r"[a-z]+|[0-9]+")


@functools.total_ordering
@dataclass(frozen=True)
class VersionIdentity:
    """
    Immutable parsed Go version.

    Attributes:
        major: Major version number
        minor: Minor version number
        patch: Patch number (0 when the text omits it)
        prerelease: Ordered prerelease tokens, e.g. ('rc', 1); empty for releases
        text: Canonical un-prefixed text, e.g. '1.21.0rc1' (not part of equality)
    """

    major: int
    minor: int
    patch: int = 0
    prerelease: Tuple[PrereleaseToken, ...] = ()
    text: str = field(default="", compare=False)

    @classmethod
    def parse(cls, value: str) -> "VersionIdentity":
        """
        Parse a version string.

        Raises:
            InvalidVersionError: If the string is not a valid Go version
        """
        if value is None:
            raise InvalidVersionError("", "empty version")

        text = str(value).strip().lower()
        if text.startswith(VERSION_PREFIX):
            text = text[len(VERSION_PREFIX) :]
        if not text:
            raise InvalidVersionError(str(value), "empty version")

        match = _NUMERIC_PART.match(text)
        if not match:
            raise InvalidVersionError(str(value), "must start with MAJOR.MINOR")

        numbers = [int(part) for part in match.group("numbers").split(".")]
        if len(numbers) < 2:
            raise InvalidVersionError(str(value), "missing minor version")
        if len(numbers) > 3:
            raise InvalidVersionError(str(value), "too many numeric segments")
        if numbers[0] == 0 and numbers[1] == 0:
            raise InvalidVersionError(str(value), "0.0 is not a release")

        rest = match.group("rest")
        if rest and not _PRERELEASE.match(rest):
            raise InvalidVersionError(str(value), f"unrecognized suffix '{rest}'")

        prerelease = tuple(
            int(token) if token.isdigit() else token for token in _TOKEN.findall(rest)
        )

        return cls(
            major=numbers[0],
            minor=numbers[1],
            patch=numbers[2] if len(numbers) == 3 else 0,
            prerelease=prerelease,
            text=".".join(str(n) for n in numbers) + _format_prerelease(prerelease),
        )

    @property
    def is_stable(self) -> bool:
        return not self.prerelease

    @property
    def major_minor(self) -> str:
        return f"{self.major}.{self.minor}"

    def normalized(self) -> str:
        """Prefixed form used for directory names and map keys."""
        return f"{VERSION_PREFIX}{self}"

    def sort_key(self) -> tuple:
        # Releases carry a 1 so they sort after any prerelease of the same triple
        tokens = tuple(
            (0, token, "") if isinstance(token, int) else (1, 0, token)
            for token in self.prerelease
        )
        return (self.major, self.minor, self.patch, 0 if self.prerelease else 1, tokens)

    def __lt__(self, other):
        if not isinstance(other, VersionIdentity):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        if self.text:
            return self.text
        base = f"{self.major}.{self.minor}.{self.patch}"
        return base + _format_prerelease(self.prerelease)


def _format_prerelease(tokens: Tuple[PrereleaseToken, ...]) -> str:
    """
    Canonical prerelease text: ``('rc', 1)`` is ``rc1`` however it was spelled.

    Separators are kept only between two tokens of the same kind, so
    ``beta.1.2`` and ``beta12`` stay distinct.
    """
    text = ""
    previous = None
    for token in tokens:
        if previous is not None and isinstance(token, int) == isinstance(previous, int):
            text += "."
        text += str(token)
        previous = token
    return text


def parse_version(value: Union[str, VersionIdentity]) -> VersionIdentity:
    """Parse a string, or pass an existing identity through."""
    if isinstance(value, VersionIdentity):
        return value
    return VersionIdentity.parse(value)


def is_valid_version(value: str) -> bool:
    try:
        VersionIdentity.parse(value)
        return True
    except InvalidVersionError:
        return False


def compare_versions(
    a: Union[str, VersionIdentity], b: Union[str, VersionIdentity]
) -> int:
    """
    Three-way comparison.

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b

    Raises:
        InvalidVersionError: If either side cannot be parsed
    """
    key_a = parse_version(a).sort_key()
    key_b = parse_version(b).sort_key()
    return (key_a > key_b) - (key_a < key_b)


def normalize_version(value: Union[str, VersionIdentity]) -> str:
    """
    Canonical ``go``-prefixed form; idempotent.

    The numeric segments are kept as given (``1.21`` stays ``go1.21``)
    because those are the names the release mirror publishes.

    Example:
        >>> normalize_version("  GO1.21.0RC1 ")
        'go1.21.0rc1'
    """
    return parse_version(value).normalized()


def sort_versions(
    versions: Iterable[Union[str, VersionIdentity]], newest_first: bool = True
) -> List[str]:
    """Sort version strings, returning their normalized forms."""
    identities = sorted(
        (parse_version(v) for v in versions),
        key=VersionIdentity.sort_key,
        reverse=newest_first,
    )
    return [identity.normalized() for identity in identities]
