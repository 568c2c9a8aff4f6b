"""npm version range resolution using semantic versioning."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

import semantic_version

from sync.errors import VersionResolutionError
from sync.models import Packument


def parse_version(version: str) -> Optional[semantic_version.Version]:
    """Parse a concrete version string, returning None when invalid."""
    try:
        return semantic_version.Version(version)
    except (ValueError, TypeError):
        return None


def is_stable(version: semantic_version.Version) -> bool:
    """True when the version has no prerelease identifier."""
    return not version.prerelease


def _normalize_spec(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    # Hyphen ranges: "1.2.3 - 1.4.5" => ">=1.2.3,<=1.4.5"
    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s+-\s+([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        return f">={m.group(1)},<={m.group(2)}"

    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*(\d+)(?:\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return spec_str


_OPERATOR_GAP = re.compile(r'(<=|>=|<|>|=|\^|~)\s+')
_BUILD_METADATA = re.compile(r'\+[0-9A-Za-z.\-]+')


def _tidy_range(spec_str: str) -> str:
    """Drop build metadata and the blanks npm allows after an operator.

    ">= 2.2.8 < 3" => ">=2.2.8 <3", "1.2.3+build" => "1.2.3"
    """
    s = _BUILD_METADATA.sub('', spec_str.strip())
    return _OPERATOR_GAP.sub(r'\1', s).strip()


def _parse_range(spec_str: str):
    """Return a spec object for an npm range, or None when unparseable.

    ``NpmSpec`` understands ^, ~, ||, hyphen ranges and x-ranges natively;
    a normalized ``SimpleSpec`` is the fallback for loose inputs.
    """
    expression = _tidy_range(spec_str) or "*"
    try:
        return semantic_version.NpmSpec(expression)
    except (ValueError, AttributeError, TypeError):
        pass
    try:
        return semantic_version.SimpleSpec(_normalize_spec(expression))
    except (ValueError, AttributeError, TypeError):
        return None


def _parsed(candidates: Iterable[str]) -> List[Tuple[semantic_version.Version, str]]:
    pairs = []
    for raw in candidates:
        ver = parse_version(raw)
        if ver is not None:
            pairs.append((ver, raw))
    return pairs


def max_satisfying(candidates: Iterable[str], spec_str: str) -> Optional[str]:
    """Highest candidate satisfying an npm range, as its original string."""
    spec = _parse_range(spec_str)
    if spec is None:
        return None
    native = isinstance(spec, semantic_version.NpmSpec)
    matching = []
    for ver, raw in _parsed(candidates):
        # NpmSpec applies npm's prerelease rules itself
        if not native and ver.prerelease:
            continue
        if spec.match(ver):
            matching.append((ver, raw))
    if not matching:
        return None
    return max(matching, key=lambda pair: pair[0])[1]


def satisfies_any(versions: Iterable[str], spec_str: str) -> bool:
    """True when some version in ``versions`` satisfies ``spec_str``.

    Ranges that cannot be parsed (git URLs, aliases, tags) only match by
    string equality.
    """
    versions = list(versions)
    spec = _parse_range(spec_str)
    if spec is None:
        return spec_str in versions
    for ver, _ in _parsed(versions):
        if spec.match(ver):
            return True
    return False


def resolve_version(packument: Packument, version_range: str) -> Optional[str]:
    """Resolve a version, dist-tag or range against a packument.

    Order: exact version key, then dist-tag, then the highest version that
    satisfies the range. Returns None when nothing resolves.
    """
    if not packument.versions:
        return None
    if version_range in packument.versions:
        return version_range
    tagged = packument.dist_tags.get(version_range)
    if tagged is not None:
        return tagged if tagged in packument.versions else None
    return max_satisfying(packument.versions.keys(), version_range)


def require_version(packument: Packument, version_range: str) -> str:
    """Like ``resolve_version`` but raises when nothing resolves.

    Raises:
        VersionResolutionError: if no version satisfies the range or tag.
    """
    resolved = resolve_version(packument, version_range)
    if resolved is None:
        raise VersionResolutionError(packument.name, version_range)
    return resolved
