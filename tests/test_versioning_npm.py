"""Tests for npm range resolution helpers."""

import pytest

from sync.errors import VersionResolutionError
from sync.models import Packument
from versioning.npm import (
    is_stable,
    max_satisfying,
    parse_version,
    require_version,
    resolve_version,
    satisfies_any,
)


@pytest.fixture
def packument():
    """Packument with two stable releases and one prerelease."""
    return Packument.from_document({
        "name": "demo",
        "dist-tags": {"latest": "1.1.0", "next": "2.0.0-beta.1", "stale": "0.9.0"},
        "versions": {
            "1.0.0": {"version": "1.0.0"},
            "1.1.0": {"version": "1.1.0"},
            "2.0.0-beta.1": {"version": "2.0.0-beta.1"},
        },
    })


class TestResolveVersion:
    """Exact version, dist-tag, then range."""

    def test_exact_version(self, packument):
        assert resolve_version(packument, "1.0.0") == "1.0.0"

    def test_dist_tag(self, packument):
        assert resolve_version(packument, "latest") == "1.1.0"
        assert resolve_version(packument, "next") == "2.0.0-beta.1"

    def test_dist_tag_pointing_at_unknown_version(self, packument):
        assert resolve_version(packument, "stale") is None

    @pytest.mark.parametrize("spec,expected", [
        ("^1.0.0", "1.1.0"),
        ("~1.0.0", "1.0.0"),
        ("1.x", "1.1.0"),
        (">=1.0.0 <2.0.0", "1.1.0"),
        ("1.0.0 - 1.1.0", "1.1.0"),
        ("*", "1.1.0"),
        ("", "1.1.0"),
    ])
    def test_ranges_pick_highest_stable(self, packument, spec, expected):
        assert resolve_version(packument, spec) == expected

    @pytest.mark.parametrize("spec,expected", [
        (">= 1.0.0 < 2", "1.1.0"),
        ("> 1.0.0", "1.1.0"),
        ("< 1.1.0", "1.0.0"),
        ("~ 1.0.0", "1.0.0"),
        ("<= 1.0.0 || >= 1.1.0", "1.1.0"),
    ])
    def test_blank_after_operator(self, packument, spec, expected):
        assert resolve_version(packument, spec) == expected

    @pytest.mark.parametrize("spec,expected", [
        ("1.1.0+build.7", "1.1.0"),
        ("^1.0.0+sha.abc", "1.1.0"),
        ("1.0.0+a - 1.0.5+b", "1.0.0"),
    ])
    def test_build_metadata_is_ignored(self, packument, spec, expected):
        assert resolve_version(packument, spec) == expected

    def test_unsatisfiable_range(self, packument):
        assert resolve_version(packument, "^3.0.0") is None

    def test_empty_packument(self):
        assert resolve_version(Packument(name="empty"), "*") is None

    def test_require_version_raises(self, packument):
        with pytest.raises(VersionResolutionError):
            require_version(packument, "^3.0.0")
        assert require_version(packument, "^1") == "1.1.0"


class TestSatisfiesAny:
    """Cache satisfaction checks."""

    def test_matching_version(self):
        assert satisfies_any(["1.0.0", "2.3.4"], "^2.0.0") is True

    def test_no_matching_version(self):
        assert satisfies_any(["1.0.0"], "^2.0.0") is False

    def test_unparseable_range_uses_string_equality(self):
        assert satisfies_any(["github:user/repo"], "github:user/repo") is True
        assert satisfies_any(["1.0.0"], "github:user/repo") is False

    def test_blank_after_operator(self):
        assert satisfies_any(["2.7.1"], ">= 2.2.8 < 3") is True
        assert satisfies_any(["3.0.0"], ">= 2.2.8 < 3") is False


class TestHelpers:
    """Parsing helpers."""

    def test_parse_version_invalid(self):
        assert parse_version("not-a-version") is None

    def test_is_stable(self):
        assert is_stable(parse_version("1.0.0"))
        assert not is_stable(parse_version("1.0.0-rc.1"))

    def test_max_satisfying_ignores_invalid_candidates(self):
        assert max_satisfying(["bogus", "1.2.3", "1.2.4"], "~1.2.0") == "1.2.4"

    def test_build_metadata_in_range(self):
        assert max_satisfying(["1.2.3"], "1.2.3+build") == "1.2.3"

    @pytest.mark.parametrize("spec", ["a - 2", "04 - 8", "1.0.0 - ~"])
    def test_malformed_hyphen_range_does_not_raise(self, spec):
        max_satisfying(["1.0.0", "2.0.0", "8.0.0"], spec)
        satisfies_any(["1.0.0"], spec)

    def test_malformed_hyphen_range_is_unresolvable(self):
        assert max_satisfying(["1.0.0", "2.0.0"], "a - 2") is None
        assert satisfies_any(["1.0.0"], "a - 2") is False
