"""Semantic versioning utilities.

Versions are parsed and ordered by the ``semver`` package (semver 2.0.0
precedence, build metadata ignored). Ranges support the subset of
node-style syntax module metadata uses, expanded into comparators over
``semver.Version``:

- Wildcard: "*", "x" or ""
- Exact: "1.0.0" or "=1.0.0"
- Comparators: ">1.0.0", ">=1.0.0", "<2.0.0", "<=2.0.0"
- Caret: "^1.2.3" (>=1.2.3 <2.0.0), "^0.2.3" (>=0.2.3 <0.3.0)
- Tilde: "~1.2.3" (>=1.2.3 <1.3.0)
- X-ranges: "1.x", "1.2.x", "1", "1.2"
- Hyphen: "1.2.3 - 2.3.4"

Comparators separated by whitespace or commas must all match; "||"
separates alternatives.
"""

import re
from dataclasses import dataclass
from operator import eq, ge, gt, le, lt
from typing import Iterable, Optional

from semver import Version

from module_registry.exceptions import InvalidVersionFormatError

_PARTIAL_RE = re.compile(
    r"^v?(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$",
    re.ASCII,
)

_OPERATOR_RE = re.compile(r"^(>=|<=|>|<|=|\^|~>|~)?(.*)$")
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_WILDCARDS = {"x", "X", "*"}

_OPERATORS = {
    "=": eq,
    ">": gt,
    ">=": ge,
    "<": lt,
    "<=": le,
}

_MIN_VERSION = Version(0, 0, 0, prerelease="0")


def _release(version: Version) -> tuple[int, int, int]:
    return (version.major, version.minor, version.patch)


@dataclass(frozen=True)
class Comparator:
    """Single version comparison, e.g. ">=1.2.0"."""

    operator: str
    version: Version

    def test(self, version: Version) -> bool:
        return _OPERATORS[self.operator](version, self.version)

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


@dataclass(frozen=True)
class VersionRange:
    """Parsed version range.

    Attributes:
        raw: The range text as given.
        sets: Alternatives; each is a tuple of comparators that must all match.
            An empty tuple matches every release.
    """

    raw: str
    sets: tuple[tuple[Comparator, ...], ...]

    def __contains__(self, version: Version) -> bool:
        return any(_set_matches(comparators, version) for comparators in self.sets)

    def __str__(self) -> str:
        return self.raw


def parse_version(version_str: str) -> Version:
    """Parse a version string into a Version object.

    Args:
        version_str: Version string (e.g., "1.0.0", "2.1.0-beta.1+build.5").

    Returns:
        Parsed Version object.

    Raises:
        InvalidVersionFormatError: If version string is invalid.
    """
    if not isinstance(version_str, str):
        raise InvalidVersionFormatError(str(version_str))

    text = version_str.strip()
    if text.startswith("v"):
        text = text[1:]
    try:
        return Version.parse(text)
    except ValueError:
        raise InvalidVersionFormatError(version_str) from None


def is_valid_version(version_str: str) -> bool:
    """Check whether a string is a parseable semantic version."""
    try:
        parse_version(version_str)
    except InvalidVersionFormatError:
        return False
    return True


def parse_range(range_str: str) -> VersionRange:
    """Parse a version range string.

    Args:
        range_str: Range expression (see module docstring for the grammar).

    Returns:
        VersionRange for matching versions.

    Raises:
        InvalidVersionFormatError: If the range cannot be parsed.
    """
    if not isinstance(range_str, str):
        raise InvalidVersionFormatError(str(range_str), kind="range")

    sets = []
    for alternative in range_str.split("||"):
        try:
            sets.append(_parse_comparator_set(alternative))
        except InvalidVersionFormatError:
            raise InvalidVersionFormatError(range_str, kind="range") from None
    return VersionRange(raw=range_str.strip(), sets=tuple(sets))


def matches(version: Version, version_range: VersionRange) -> bool:
    """Check if a version matches a range.

    Args:
        version: Version to check.
        version_range: Range to match against.

    Returns:
        True if version matches range.
    """
    return version in version_range


def satisfies(version: str, constraint: str) -> bool:
    """Check whether a version string satisfies a range string.

    A pre-release only satisfies a comparator set that names a pre-release
    of the same major.minor.patch, so "^1.0.0" never picks "1.1.0-beta".

    Raises:
        InvalidVersionFormatError: If either input cannot be parsed.
    """
    return parse_version(version) in parse_range(constraint)


def compare_versions(v1: str, v2: str) -> int:
    """Compare two version strings.

    Args:
        v1: First version string.
        v2: Second version string.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2.

    Raises:
        InvalidVersionFormatError: If either version is invalid.
    """
    return parse_version(v1).compare(parse_version(v2))


def find_best_match(
    versions: Iterable[str],
    version_range: VersionRange,
) -> Optional[str]:
    """Find the best (newest) matching version.

    Args:
        versions: Available version strings.
        version_range: Range to match against.

    Returns:
        Best matching version string or None if no match.
    """
    matching = [v for v in versions if parse_version(v) in version_range]
    if not matching:
        return None
    return max(matching, key=parse_version)


def ranges_intersect(first: str, second: str) -> bool:
    """Check whether some version can satisfy both ranges.

    Each comparator set is reduced to an interval and the intervals are
    intersected; the pre-release restriction is not applied here.

    Raises:
        InvalidVersionFormatError: If either range cannot be parsed.
    """
    first_intervals = [_to_interval(s) for s in parse_range(first).sets]
    second_intervals = [_to_interval(s) for s in parse_range(second).sets]
    return any(
        _interval_overlaps(a, b)
        for a in first_intervals
        if a is not None
        for b in second_intervals
        if b is not None
    )


# Range parsing


def _set_matches(comparators: tuple[Comparator, ...], version: Version) -> bool:
    if not all(c.test(version) for c in comparators):
        return False
    if not version.prerelease:
        return True
    return any(
        c.version.prerelease and _release(c.version) == _release(version)
        for c in comparators
    )


def _parse_comparator_set(text: str) -> tuple[Comparator, ...]:
    text = text.replace(",", " ").strip()
    if not text:
        return ()

    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        return _hyphen_range(hyphen.group(1), hyphen.group(2))

    # Allow ">= 1.2.3" as well as ">=1.2.3"
    text = re.sub(r"(>=|<=|>|<|=|\^|~>|~)\s+", r"\1", text)

    comparators: list[Comparator] = []
    for token in text.split():
        comparators.extend(_parse_token(token))
    return tuple(comparators)


def _parse_partial(text: str) -> tuple[Optional[int], Optional[int], Optional[int], str]:
    match = _PARTIAL_RE.match(text)
    if not match:
        raise InvalidVersionFormatError(text)

    parts: list[Optional[int]] = []
    for name in ("major", "minor", "patch"):
        value = match.group(name)
        if value is None or value in _WILDCARDS:
            parts.append(None)
        else:
            parts.append(int(value))

    # Anything after a wildcard is a wildcard too ("1.x.3" == "1.x")
    for index in range(1, 3):
        if parts[index - 1] is None:
            parts[index] = None

    major, minor, patch = parts
    suffix = ""
    if patch is not None:
        if match.group("prerelease"):
            suffix += "-" + match.group("prerelease")
        if match.group("build"):
            suffix += "+" + match.group("build")
    return major, minor, patch, suffix


def _full(major: int, minor: int, patch: int, suffix: str = "") -> Version:
    return parse_version(f"{major}.{minor}.{patch}{suffix}")


def _parse_token(token: str) -> list[Comparator]:
    if token in _WILDCARDS:
        return []

    operator, rest = _OPERATOR_RE.match(token).groups()
    major, minor, patch, suffix = _parse_partial(rest)

    if operator == "^":
        return _caret(major, minor, patch, suffix)
    if operator in ("~", "~>"):
        return _tilde(major, minor, patch, suffix)
    if operator in (None, "="):
        return _x_range(major, minor, patch, suffix)
    return _comparator(operator, major, minor, patch, suffix)


def _caret(major, minor, patch, suffix) -> list[Comparator]:
    if major is None:
        return []
    if minor is None:
        return [Comparator(">=", _full(major, 0, 0)), Comparator("<", _full(major + 1, 0, 0))]
    if patch is None:
        lower = _full(major, minor, 0)
        if major == 0:
            return [Comparator(">=", lower), Comparator("<", _full(0, minor + 1, 0))]
        return [Comparator(">=", lower), Comparator("<", _full(major + 1, 0, 0))]

    lower = _full(major, minor, patch, suffix)
    if major > 0:
        upper = _full(major + 1, 0, 0)
    elif minor > 0:
        upper = _full(0, minor + 1, 0)
    else:
        upper = _full(0, 0, patch + 1)
    return [Comparator(">=", lower), Comparator("<", upper)]


def _tilde(major, minor, patch, suffix) -> list[Comparator]:
    if major is None:
        return []
    if minor is None:
        return [Comparator(">=", _full(major, 0, 0)), Comparator("<", _full(major + 1, 0, 0))]
    lower = _full(major, minor, patch or 0, suffix if patch is not None else "")
    return [Comparator(">=", lower), Comparator("<", _full(major, minor + 1, 0))]


def _x_range(major, minor, patch, suffix) -> list[Comparator]:
    if major is None:
        return []
    if minor is None:
        return [Comparator(">=", _full(major, 0, 0)), Comparator("<", _full(major + 1, 0, 0))]
    if patch is None:
        return [Comparator(">=", _full(major, minor, 0)), Comparator("<", _full(major, minor + 1, 0))]
    return [Comparator("=", _full(major, minor, patch, suffix))]


def _comparator(operator, major, minor, patch, suffix) -> list[Comparator]:
    if major is None:
        if operator in (">=", "<="):
            return []
        # ">*" and "<*" can never match
        return [Comparator("<", _MIN_VERSION)]

    if patch is not None:
        return [Comparator(operator, _full(major, minor, patch, suffix))]

    # Partial versions: ">1.2" means ">=1.3.0", "<=1.2" means "<1.3.0"
    if minor is None:
        floor, ceiling = _full(major, 0, 0), _full(major + 1, 0, 0)
    else:
        floor, ceiling = _full(major, minor, 0), _full(major, minor + 1, 0)

    if operator == ">":
        return [Comparator(">=", ceiling)]
    if operator == ">=":
        return [Comparator(">=", floor)]
    if operator == "<":
        return [Comparator("<", floor)]
    return [Comparator("<", ceiling)]


def _hyphen_range(lower_text: str, upper_text: str) -> tuple[Comparator, ...]:
    comparators: list[Comparator] = []

    major, minor, patch, suffix = _parse_partial(lower_text)
    if major is not None:
        comparators.append(Comparator(">=", _full(major, minor or 0, patch or 0, suffix)))

    major, minor, patch, suffix = _parse_partial(upper_text)
    if major is not None:
        if patch is not None:
            comparators.append(Comparator("<=", _full(major, minor, patch, suffix)))
        elif minor is not None:
            comparators.append(Comparator("<", _full(major, minor + 1, 0)))
        else:
            comparators.append(Comparator("<", _full(major + 1, 0, 0)))
    return tuple(comparators)


# Interval arithmetic for ranges_intersect

_Bound = Optional[tuple[Version, bool]]


def _to_interval(comparators: tuple[Comparator, ...]) -> Optional[tuple[_Bound, _Bound]]:
    """Reduce a comparator set to (lower, upper); None if it is empty."""
    lower: _Bound = None
    upper: _Bound = None

    for comparator in comparators:
        version, operator = comparator.version, comparator.operator
        if operator in ("=", ">=", ">"):
            candidate = (version, operator != ">")
            if lower is None or _tighter_lower(candidate, lower):
                lower = candidate
        if operator in ("=", "<=", "<"):
            candidate = (version, operator != "<")
            if upper is None or _tighter_upper(candidate, upper):
                upper = candidate

    if lower is not None and upper is not None:
        if lower[0] > upper[0]:
            return None
        if lower[0] == upper[0] and not (lower[1] and upper[1]):
            return None
    return lower, upper


def _tighter_lower(candidate: tuple[Version, bool], current: tuple[Version, bool]) -> bool:
    if candidate[0] != current[0]:
        return candidate[0] > current[0]
    return not candidate[1] and current[1]


def _tighter_upper(candidate: tuple[Version, bool], current: tuple[Version, bool]) -> bool:
    if candidate[0] != current[0]:
        return candidate[0] < current[0]
    return not candidate[1] and current[1]


def _interval_overlaps(first, second) -> bool:
    lowers = [bound for bound in (first[0], second[0]) if bound is not None]
    uppers = [bound for bound in (first[1], second[1]) if bound is not None]
    if not lowers or not uppers:
        return True

    lower = lowers[0]
    for bound in lowers[1:]:
        if _tighter_lower(bound, lower):
            lower = bound
    upper = uppers[0]
    for bound in uppers[1:]:
        if _tighter_upper(bound, upper):
            upper = bound

    if lower[0] < upper[0]:
        return True
    return lower[0] == upper[0] and lower[1] and upper[1]
