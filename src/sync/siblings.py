"""Sibling version completion.

Keeps an offline mirror patch- and minor-current without forcing a major
upgrade: for each cached ``X.Y.Z`` propose the latest stable ``X.Y.*`` and the
latest stable ``X.*.*`` available upstream.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Set, Tuple

import semantic_version

from versioning.npm import is_stable, parse_version


def _highest_in(
    stable: List[Tuple[semantic_version.Version, str]],
    lower: semantic_version.Version,
    upper: semantic_version.Version,
) -> Optional[str]:
    """Highest candidate in the half-open range ``[lower, upper)``."""
    best: Optional[Tuple[semantic_version.Version, str]] = None
    for ver, raw in stable:
        if lower <= ver < upper and (best is None or ver > best[0]):
            best = (ver, raw)
    return best[1] if best else None


def complete_sibling_versions(
    cached_versions: Iterable[str], available_versions: Iterable[str]
) -> Set[str]:
    """Propose the newest patch and minor siblings of every cached version.

    Args:
        cached_versions: Versions already present locally.
        available_versions: Versions published upstream.

    Returns:
        Versions to add; never a cached version and never a prerelease.
    """
    cached = set(cached_versions)
    stable = []
    for raw in available_versions:
        ver = parse_version(raw)
        if ver is not None and is_stable(ver):
            stable.append((ver, raw))

    result: Set[str] = set()
    for raw in cached:
        seed = parse_version(raw)
        if seed is None:
            continue
        # Prerelease seeds search the same ranges as their release.
        minor_floor = semantic_version.Version(major=seed.major, minor=seed.minor, patch=0)
        minor_ceiling = semantic_version.Version(major=seed.major, minor=seed.minor + 1, patch=0)
        major_floor = semantic_version.Version(major=seed.major, minor=0, patch=0)
        major_ceiling = semantic_version.Version(major=seed.major + 1, minor=0, patch=0)

        for candidate in (
            _highest_in(stable, minor_floor, minor_ceiling),
            _highest_in(stable, major_floor, major_ceiling),
        ):
            if candidate is not None and candidate not in cached:
                result.add(candidate)
    return result
