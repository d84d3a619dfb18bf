"""
Unit tests for Go version parsing, normalization and ordering.
"""

import itertools

import pytest

from gopherkit.core.exceptions import InvalidVersionError
from gopherkit.toolchain.version import (
    VersionIdentity,
    compare_versions,
    is_valid_version,
    normalize_version,
    parse_version,
    sort_versions,
)


class TestParse:
    """Test VersionIdentity.parse."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1.21.0", (1, 21, 0, ())),
            ("go1.21.0", (1, 21, 0, ())),
            ("1.21", (1, 21, 0, ())),
            ("1.21.0rc1", (1, 21, 0, ("rc", 1))),
            ("go1.22rc2", (1, 22, 0, ("rc", 2))),
            ("1.21.0-beta.1", (1, 21, 0, ("beta", 1))),
            ("1.9beta1", (1, 9, 0, ("beta", 1))),
            ("  GO1.21.3  ", (1, 21, 3, ())),
        ],
    )
    def test_accepts_go_version_forms(self, text, expected):
        """Test the accepted version spellings."""
        identity = VersionIdentity.parse(text)
        assert (identity.major, identity.minor, identity.patch, identity.prerelease) == expected

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "go", "1", "1.21.0.1", "latest", "1.21.x", "v1.21.0", "0.0", "1.21.0dev", None],
    )
    def test_rejects_invalid_versions(self, text):
        """Test that malformed versions raise InvalidVersionError."""
        with pytest.raises(InvalidVersionError):
            VersionIdentity.parse(text)

    def test_error_carries_code(self):
        """Test the error exposes its stable code."""
        with pytest.raises(InvalidVersionError) as exc_info:
            parse_version("nope")
        assert exc_info.value.code == "INVALID_VERSION"
        assert exc_info.value.retryable is False

    def test_parse_version_passes_identity_through(self):
        """Test parse_version returns an existing identity unchanged."""
        identity = VersionIdentity.parse("1.21.0")
        assert parse_version(identity) is identity

    def test_is_valid_version(self):
        """Test the boolean validity helper."""
        assert is_valid_version("1.21.0")
        assert not is_valid_version("banana")


class TestNormalize:
    """Test normalize_version."""

    def test_adds_prefix(self):
        """Test the go prefix is added."""
        assert normalize_version("1.21.0") == "go1.21.0"

    def test_idempotent(self):
        """Test normalizing twice gives the same result."""
        once = normalize_version("1.21.0rc1")
        assert normalize_version(once) == once

    def test_lowercases_and_strips(self):
        """Test whitespace and case are normalized."""
        assert normalize_version("  GO1.21.0RC1 ") == "go1.21.0rc1"

    def test_keeps_given_segments(self):
        """Test a two-segment version keeps its published name."""
        assert normalize_version("1.21") == "go1.21"

    @pytest.mark.parametrize("spelling", ["1.21.0rc1", "1.21.0-rc.1", "1.21.0-rc1", "go1.21.0RC.1"])
    def test_prerelease_spellings_share_one_key(self, spelling):
        """Test equal prereleases normalize to the same name."""
        assert normalize_version(spelling) == "go1.21.0rc1"

    def test_distinct_prereleases_keep_distinct_keys(self):
        """Test beta.1.2 and beta12 do not collide."""
        assert normalize_version("1.21beta.1.2") == "go1.21beta1.2"
        assert normalize_version("1.21beta12") == "go1.21beta12"
        assert normalize_version("go1.21beta1.2") == "go1.21beta1.2"


class TestOrdering:
    """Test total ordering of versions."""

    def test_numeric_not_lexicographic(self):
        """Test 1.10 sorts after 1.9."""
        assert parse_version("1.10.0") > parse_version("1.9.0")

    def test_release_after_prereleases(self):
        """Test a release sorts after its rc, beta and alpha."""
        release = parse_version("1.21.0")
        assert parse_version("1.21.0rc1") < release
        assert parse_version("1.21.0beta1") < release
        assert parse_version("1.21.0alpha1") < release

    def test_prerelease_tags_ordered(self):
        """Test alpha < beta < rc."""
        assert parse_version("1.21alpha1") < parse_version("1.21beta1") < parse_version("1.21rc1")

    def test_prerelease_numbers_numeric(self):
        """Test rc10 sorts after rc2."""
        assert parse_version("1.21rc10") > parse_version("1.21rc2")

    def test_missing_patch_equals_zero(self):
        """Test 1.21 and 1.21.0 are the same identity."""
        assert parse_version("1.21") == parse_version("go1.21.0")
        assert compare_versions("1.21", "1.21.0") == 0

    def test_prerelease_of_next_patch_after_previous_release(self):
        """Test 1.21.1rc1 sorts after 1.21.0."""
        assert parse_version("1.21.1rc1") > parse_version("1.21.0")

    def test_compare_versions(self):
        """Test three-way comparison."""
        assert compare_versions("1.20.0", "1.21.0") == -1
        assert compare_versions("go1.22.0", "1.21.9") == 1

    def test_compare_rejects_invalid(self):
        """Test comparison with an invalid side raises."""
        with pytest.raises(InvalidVersionError):
            compare_versions("1.21.0", "bogus")

    def test_sort_versions_newest_first(self):
        """Test sorting returns normalized names, newest first."""
        result = sort_versions(["1.9.0", "go1.21.0", "1.21.0rc1", "1.10.2"])
        assert result == ["go1.21.0", "go1.21.0rc1", "go1.10.2", "go1.9.0"]

    def test_sort_versions_oldest_first(self):
        """Test ascending sort."""
        result = sort_versions(["1.21.0", "1.20.0"], newest_first=False)
        assert result == ["go1.20.0", "go1.21.0"]


SAMPLE = [
    "1.9", "1.9.2", "1.10", "1.20.14", "1.21alpha1", "1.21beta1", "1.21beta2",
    "1.21rc1", "1.21rc2", "1.21rc10", "1.21.0", "go1.21.0", "1.21.0-rc.1",
    "1.21.1", "1.22rc1", "1.22.0", "2.0",
]


class TestOrderingIsTotal:
    """Test compare_versions is a total order over a mixed sample."""

    @pytest.mark.parametrize("version", SAMPLE)
    def test_reflexive(self, version):
        """Test every version equals itself."""
        assert compare_versions(version, version) == 0

    def test_antisymmetric(self):
        """Test swapping the operands negates the result."""
        for a, b in itertools.product(SAMPLE, repeat=2):
            assert compare_versions(a, b) == -compare_versions(b, a), (a, b)

    def test_transitive(self):
        """Test a <= b and b <= c imply a <= c."""
        for a, b, c in itertools.product(SAMPLE, repeat=3):
            if compare_versions(a, b) <= 0 and compare_versions(b, c) <= 0:
                assert compare_versions(a, c) <= 0, (a, b, c)

    def test_equal_versions_share_a_key(self):
        """Test versions that compare equal with the same segments normalize alike."""
        assert compare_versions("1.21rc1", "1.21-rc.1") == 0
        assert normalize_version("1.21rc1") == normalize_version("1.21-rc.1")


class TestAccessors:
    """Test identity helpers."""

    def test_is_stable(self):
        """Test stability reflects the prerelease tag."""
        assert parse_version("1.21.0").is_stable
        assert not parse_version("1.21rc1").is_stable

    def test_major_minor(self):
        """Test the major.minor string."""
        assert parse_version("go1.21.3").major_minor == "1.21"

    def test_str_is_unprefixed(self):
        """Test str() drops the go prefix."""
        assert str(parse_version("go1.21.0rc1")) == "1.21.0rc1"

    def test_hashable(self):
        """Test identities can be used in sets."""
        assert len({parse_version("1.21"), parse_version("1.21.0")}) == 1
