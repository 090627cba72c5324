"""Tests for semver utilities."""

import pytest
from semver import Version

from module_registry.exceptions import InvalidVersionFormatError
from module_registry.resolver.semver import (
    compare_versions,
    find_best_match,
    is_valid_version,
    matches,
    parse_range,
    parse_version,
    ranges_intersect,
    satisfies,
)


def test_parse_version() -> None:
    """Test version parsing."""
    v = parse_version("1.2.3")
    assert v.major == 1
    assert v.minor == 2
    assert v.patch == 3
    assert v.prerelease is None


def test_parse_version_prerelease_and_build() -> None:
    """Test prerelease and build metadata parsing."""
    v = parse_version("2.0.0-beta.1+build.5")
    assert v.prerelease == "beta.1"
    assert v.build == "build.5"
    assert str(v) == "2.0.0-beta.1+build.5"


def test_parse_version_returns_semver_version() -> None:
    """Test that parsed versions are semver.Version instances."""
    v = parse_version("1.4.0-rc.1")
    assert isinstance(v, Version)
    assert v == Version(1, 4, 0, prerelease="rc.1")
    assert v < Version.parse("1.4.0")


def test_parse_version_strips_v_prefix() -> None:
    assert parse_version("v1.0.0") == parse_version("1.0.0")


@pytest.mark.parametrize("text", ["1.2", "1.2.3.4", "01.2.3", "1.2.3-", "1.2.3-01", "abc", ""])
def test_parse_version_invalid(text: str) -> None:
    """Test that malformed versions are rejected."""
    with pytest.raises(InvalidVersionFormatError):
        parse_version(text)
    assert not is_valid_version(text)


def test_compare_versions() -> None:
    """Test version comparison."""
    assert compare_versions("1.0.0", "2.0.0") == -1
    assert compare_versions("2.0.0", "1.0.0") == 1
    assert compare_versions("1.0.0", "1.0.0") == 0
    assert compare_versions("1.10.0", "1.9.0") == 1


def test_compare_versions_prerelease_precedence() -> None:
    """Test the semver pre-release ordering chain."""
    chain = [
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-beta",
        "1.0.0-beta.2",
        "1.0.0-beta.11",
        "1.0.0-rc.1",
        "1.0.0",
    ]
    for lower, higher in zip(chain, chain[1:]):
        assert compare_versions(lower, higher) == -1, (lower, higher)
        assert compare_versions(higher, lower) == 1, (lower, higher)


def test_compare_versions_ignores_build_metadata() -> None:
    assert compare_versions("1.0.0+build.1", "1.0.0+build.2") == 0


def test_compare_versions_invalid() -> None:
    with pytest.raises(InvalidVersionFormatError):
        compare_versions("1.0", "1.0.0")


def test_parse_range_exact() -> None:
    """Test exact version range."""
    spec = parse_range("1.0.0")
    assert parse_version("1.0.0") in spec
    assert parse_version("1.0.1") not in spec
    assert satisfies("1.0.0", "=1.0.0")


def test_parse_range_caret() -> None:
    """Test caret range."""
    spec = parse_range("^1.2.0")
    assert parse_version("1.2.0") in spec
    assert parse_version("1.9.9") in spec
    assert parse_version("2.0.0") not in spec
    assert parse_version("1.1.9") not in spec


def test_parse_range_caret_zero_major() -> None:
    """Test caret ranges below 1.0.0."""
    assert satisfies("0.2.9", "^0.2.3")
    assert not satisfies("0.3.0", "^0.2.3")
    assert satisfies("0.0.3", "^0.0.3")
    assert not satisfies("0.0.4", "^0.0.3")


def test_parse_range_tilde() -> None:
    """Test tilde range."""
    spec = parse_range("~1.2.0")
    assert parse_version("1.2.0") in spec
    assert parse_version("1.2.9") in spec
    assert parse_version("1.3.0") not in spec
    assert satisfies("1.2.5", "~>1.2.3")


def test_parse_range_wildcard() -> None:
    """Test wildcard range."""
    for text in ("*", "x", ""):
        spec = parse_range(text)
        assert parse_version("1.0.0") in spec
        assert parse_version("99.99.99") in spec


def test_parse_range_x_ranges() -> None:
    """Test x-ranges and partial versions."""
    assert satisfies("1.9.0", "1.x")
    assert not satisfies("2.0.0", "1.x")
    assert satisfies("1.2.7", "1.2.x")
    assert not satisfies("1.3.0", "1.2")
    assert satisfies("1.0.0", "1")


def test_parse_range_comparators() -> None:
    """Test comparator ranges joined by comma and whitespace."""
    for text in (">=1.0.0,<2.0.0", ">=1.0.0 <2.0.0", ">= 1.0.0, < 2.0.0"):
        spec = parse_range(text)
        assert parse_version("1.0.0") in spec
        assert parse_version("1.5.0") in spec
        assert parse_version("2.0.0") not in spec
        assert parse_version("0.9.9") not in spec


def test_parse_range_partial_comparators() -> None:
    assert satisfies("1.3.0", ">1.2")
    assert not satisfies("1.2.9", ">1.2")
    assert satisfies("1.2.9", "<=1.2")
    assert not satisfies("1.3.0", "<=1.2")


def test_parse_range_hyphen() -> None:
    """Test inclusive hyphen range."""
    spec = parse_range("1.2.3 - 2.3.4")
    assert parse_version("1.2.3") in spec
    assert parse_version("2.3.4") in spec
    assert parse_version("2.3.5") not in spec
    assert parse_version("1.2.2") not in spec


def test_parse_range_or() -> None:
    """Test alternatives separated by ||."""
    spec = parse_range("^1.0.0 || ^3.0.0")
    assert parse_version("1.4.0") in spec
    assert parse_version("3.1.0") in spec
    assert parse_version("2.0.0") not in spec


def test_parse_range_invalid() -> None:
    with pytest.raises(InvalidVersionFormatError) as exc_info:
        parse_range(">=banana")
    assert exc_info.value.kind == "range"


def test_prerelease_needs_matching_comparator() -> None:
    """Test that pre-releases only match ranges naming one on the same release."""
    assert not satisfies("1.1.0-beta", "^1.0.0")
    assert not satisfies("1.0.0-rc.1", "*")
    assert satisfies("1.0.0-beta.2", ">=1.0.0-beta.1")
    assert not satisfies("1.0.1-beta.2", ">=1.0.0-beta.1")


def test_matches() -> None:
    """Test version matching."""
    spec = parse_range(">=1.0.0")
    assert matches(parse_version("1.0.0"), spec)
    assert matches(parse_version("2.0.0"), spec)
    assert not matches(parse_version("0.9.0"), spec)


def test_find_best_match() -> None:
    """Test finding best matching version."""
    versions = ["1.0.0", "1.1.0", "1.2.0", "2.0.0", "2.1.0-beta"]

    assert find_best_match(versions, parse_range("^1.0.0")) == "1.2.0"
    assert find_best_match(versions, parse_range("*")) == "2.0.0"
    assert find_best_match(versions, parse_range(">=3.0.0")) is None


def test_ranges_intersect() -> None:
    """Test whether two ranges share a version."""
    assert ranges_intersect("^1.0.0", "1.4.2")
    assert ranges_intersect(">=1.0.0 <1.5.0", ">=1.4.0")
    assert ranges_intersect("*", "^7.0.0")
    assert not ranges_intersect("^2.0.0", "^1.0.0")
    assert not ranges_intersect("<1.0.0", ">=1.0.0")
    assert ranges_intersect("<=1.0.0", ">=1.0.0")
    assert ranges_intersect("^1.0.0 || ^3.0.0", "3.2.0")

