"""Platform-specific binary package detection.

Packages such as esbuild or sharp ship native code through optional
dependencies named after the os/arch/libc they target. For an offline
mirror serving other machines, those optional dependencies must be fetched
for each target platform, not just the host.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Iterable, List, Optional

from common.logging_utils import extra_context, is_debug_enabled
from versioning.npm import parse_version, resolve_version

from .metadata_cache import MetadataCache
from .models import (
    CachedPackage,
    DownloadReason,
    PackageToDownload,
    PlatformConfig,
    VersionManifest,
    clamp_concurrency,
    dedupe_plan,
    package_key,
)
from .pool import run_bounded

logger = logging.getLogger(__name__)

PLATFORM_PATTERNS = [
    re.compile(p) for p in (
        r"@esbuild/",
        r"@swc/core-",
        r"@rollup/rollup-",
        r"@img/sharp-",
        r"-linux-",
        r"-win32-",
        r"-darwin-",
        r"-x64",
        r"-arm64",
        r"-gnu$",
        r"-musl$",
        r"-msvc$",
    )
]

_ARCH_TOKENS = {
    "x64": ("x64", "x86_64"),
    "arm64": ("arm64", "aarch64"),
    "ia32": ("ia32", "x86"),
}


def is_platform_specific_package(name: str) -> bool:
    """True when a package name follows a platform-binary naming convention."""
    return any(pattern.search(name) for pattern in PLATFORM_PATTERNS)


def is_platform_binary(manifest: VersionManifest) -> bool:
    """True when a version declares os/cpu restrictions or platform optionals."""
    if manifest.os or manifest.cpu:
        return True
    return any(is_platform_specific_package(dep) for dep in manifest.optional_dependencies)


def matches_platform(name: str, platform: PlatformConfig) -> bool:
    """True when a platform package name targets ``platform``."""
    lowered = name.lower()
    if platform.os not in ("linux", "win32", "darwin") or platform.os not in lowered:
        return False
    tokens = _ARCH_TOKENS.get(platform.arch)
    if not tokens or not any(token in lowered for token in tokens):
        return False
    if platform.os == "linux" and platform.libc:
        if platform.libc == "glibc":
            return "gnu" in lowered or "musl" not in lowered
        if platform.libc == "musl":
            return "musl" in lowered
        return False
    return True


def _reference_version(pkg: CachedPackage) -> Optional[str]:
    """Version whose manifest decides: latest cached, else highest cached."""
    if pkg.latest_version and pkg.latest_version in pkg.versions:
        return pkg.latest_version
    parsed = [(parse_version(v), v) for v in pkg.versions]
    valid = [(ver, raw) for ver, raw in parsed if ver is not None]
    if valid:
        return max(valid, key=lambda pair: pair[0])[1]
    return next(iter(sorted(pkg.versions)), None)


class PlatformPlanner:
    """Plans ``platform-binary`` downloads for cached packages."""

    def __init__(self, cache: MetadataCache):
        self._cache = cache

    async def plan(
        self,
        cached: List[CachedPackage],
        platforms: Iterable[PlatformConfig],
        concurrency: Optional[int] = None,
    ) -> List[PackageToDownload]:
        """Resolve matching optional dependencies for each target platform.

        Args:
            cached: Snapshot of the local store.
            platforms: Target platforms.
            concurrency: Worker count for packument lookups.

        Returns:
            Deduplicated ``platform-binary`` entries not already cached.
        """
        targets = list(platforms)
        if not targets:
            return []
        cached_map = {p.name: p for p in cached}

        async def _plan_one(pkg: CachedPackage) -> List[PackageToDownload]:
            version = _reference_version(pkg)
            if version is None:
                return []
            packument = await self._cache.get(pkg.name)
            manifest = packument.versions.get(version) if packument else None
            if manifest is None or not is_platform_binary(manifest):
                return []
            required_by = package_key(pkg.name, version)
            found = []
            for dep_name, dep_range in manifest.optional_dependencies.items():
                if not any(matches_platform(dep_name, p) for p in targets):
                    continue
                dep_packument = await self._cache.get(dep_name)
                dep_version = resolve_version(dep_packument, dep_range) if dep_packument else None
                if dep_version is None:
                    logger.warning("Could not resolve platform package %s@%s", dep_name, dep_range)
                    continue
                dep_cached = cached_map.get(dep_name)
                if dep_cached is not None and dep_version in dep_cached.versions:
                    continue
                found.append(PackageToDownload(
                    dep_name, dep_version, DownloadReason.PLATFORM_BINARY, required_by,
                ))
            if found and is_debug_enabled(logger):
                logger.debug(
                    "Platform binaries found",
                    extra=extra_context(
                        event="decision", component="platform", target=required_by, count=len(found)
                    ),
                )
            return found

        async def _plan_guarded(pkg: CachedPackage) -> List[PackageToDownload]:
            try:
                return await _plan_one(pkg)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.warning("Skipping platform binaries of %s: %s", pkg.name, exc)
                return []

        groups = await run_bounded(cached, _plan_guarded, clamp_concurrency(concurrency))
        plan = dedupe_plan(entry for group in groups if group for entry in group)
        logger.info(
            "Platform binaries: %d packages for %s",
            len(plan), ", ".join(p.label for p in targets),
        )
        return plan
