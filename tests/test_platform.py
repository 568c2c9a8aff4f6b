"""Tests for platform binary detection and planning."""

import asyncio
from unittest.mock import patch

import pytest

from registry.memory import InMemoryRegistryClient
from sync.metadata_cache import MetadataCache
from sync.models import PLATFORM_PRESETS, CachedPackage, DownloadReason, PlatformConfig, VersionManifest
from sync.platform import (
    PlatformPlanner,
    is_platform_binary,
    is_platform_specific_package,
    matches_platform,
)
from versioning.npm import resolve_version

ESBUILD_OPTIONALS = {
    "@esbuild/linux-x64": "0.20.0",
    "@esbuild/linux-arm64": "0.20.0",
    "@esbuild/darwin-arm64": "0.20.0",
    "@esbuild/win32-x64": "0.20.0",
}


@pytest.fixture
def registry():
    reg = InMemoryRegistryClient()
    reg.add_package("esbuild", {"0.20.0": {"optionalDependencies": ESBUILD_OPTIONALS}})
    for name in ESBUILD_OPTIONALS:
        reg.add_package(name, {"0.20.0": {}})
    reg.add_package("left-pad", {"1.3.0": {}})
    return reg


def _plan(registry, cached, platforms):
    planner = PlatformPlanner(MetadataCache(registry))
    return asyncio.run(planner.plan(cached, platforms))


class TestPlatformMatching:
    """Name conventions and libc handling."""

    @pytest.mark.parametrize("name", [
        "@esbuild/linux-x64", "@swc/core-darwin-arm64", "@rollup/rollup-linux-x64-gnu",
        "@img/sharp-win32-x64", "lightningcss-linux-x64-musl",
    ])
    def test_platform_specific_names(self, name):
        assert is_platform_specific_package(name)

    def test_regular_name(self):
        assert not is_platform_specific_package("lodash")

    def test_matches_os_and_arch(self):
        linux = PLATFORM_PRESETS["linux-x64"]
        assert matches_platform("@esbuild/linux-x64", linux)
        assert not matches_platform("@esbuild/linux-arm64", linux)
        assert not matches_platform("@esbuild/darwin-x64", linux)
        assert matches_platform("@esbuild/win32-x64", PLATFORM_PRESETS["win32-x64"])
        assert matches_platform("@esbuild/darwin-arm64", PLATFORM_PRESETS["darwin-arm64"])

    def test_libc_variants(self):
        glibc = PLATFORM_PRESETS["linux-x64"]
        musl = PLATFORM_PRESETS["linux-x64-musl"]
        assert matches_platform("@rollup/rollup-linux-x64-gnu", glibc)
        assert not matches_platform("@rollup/rollup-linux-x64-musl", glibc)
        assert matches_platform("@rollup/rollup-linux-x64-musl", musl)
        assert not matches_platform("@rollup/rollup-linux-x64-gnu", musl)

    def test_arch_aliases(self):
        assert matches_platform("native-linux-x86_64", PlatformConfig("linux", "x64"))
        assert matches_platform("native-linux-aarch64", PlatformConfig("linux", "arm64"))

    def test_is_platform_binary(self):
        assert is_platform_binary(VersionManifest(name="x", version="1", os=("linux",)))
        assert is_platform_binary(VersionManifest(name="x", version="1",
                                                  optional_dependencies=ESBUILD_OPTIONALS))
        assert not is_platform_binary(VersionManifest(name="x", version="1",
                                                      optional_dependencies={"fsevents": "^2"}))


class TestPlatformPlanner:
    """Planning platform-binary downloads."""

    def test_plans_matching_binaries(self, registry):
        cached = [CachedPackage.of("esbuild", ["0.20.0"]), CachedPackage.of("left-pad", ["1.3.0"])]
        platforms = [PLATFORM_PRESETS["linux-x64"], PLATFORM_PRESETS["darwin-arm64"]]

        plan = _plan(registry, cached, platforms)

        assert sorted(p.key for p in plan) == ["@esbuild/darwin-arm64@0.20.0", "@esbuild/linux-x64@0.20.0"]
        assert all(p.reason is DownloadReason.PLATFORM_BINARY for p in plan)
        assert all(p.required_by == "esbuild@0.20.0" for p in plan)

    def test_skips_cached_binaries(self, registry):
        cached = [
            CachedPackage.of("esbuild", ["0.20.0"]),
            CachedPackage.of("@esbuild/linux-x64", ["0.20.0"]),
        ]
        assert _plan(registry, cached, [PLATFORM_PRESETS["linux-x64"]]) == []

    def test_no_platforms(self, registry):
        assert _plan(registry, [CachedPackage.of("esbuild", ["0.20.0"])], []) == []

    def test_overlapping_platforms_dedupe(self, registry):
        cached = [CachedPackage.of("esbuild", ["0.20.0"])]
        platforms = [PLATFORM_PRESETS["linux-x64"], PlatformConfig("linux", "x64")]
        plan = _plan(registry, cached, platforms)
        assert [p.key for p in plan] == ["@esbuild/linux-x64@0.20.0"]

    def test_malformed_optional_range_is_skipped(self, registry):
        registry.add_package("esbuild", {"0.21.0": {"optionalDependencies": {
            "@esbuild/linux-x64": "a - 2", "@esbuild/win32-x64": "0.20.0",
        }}})
        cached = [CachedPackage.of("esbuild", ["0.21.0"])]
        platforms = [PLATFORM_PRESETS["linux-x64"], PLATFORM_PRESETS["win32-x64"]]

        plan = _plan(registry, cached, platforms)
        assert [p.key for p in plan] == ["@esbuild/win32-x64@0.20.0"]

    def test_error_in_one_package_does_not_abort_planning(self, registry):
        registry.add_package("@swc/core", {"1.4.0": {"optionalDependencies": {
            "@swc/core-linux-x64-gnu": "1.4.0",
        }}})
        registry.add_package("@swc/core-linux-x64-gnu", {"1.4.0": {}})
        cached = [CachedPackage.of("esbuild", ["0.20.0"]), CachedPackage.of("@swc/core", ["1.4.0"])]

        def _flaky_resolve(packument, version_range):
            if packument.name.startswith("@esbuild/"):
                raise AttributeError("'NoneType' object has no attribute 'major'")
            return resolve_version(packument, version_range)

        with patch("sync.platform.resolve_version", side_effect=_flaky_resolve):
            plan = _plan(registry, cached, [PLATFORM_PRESETS["linux-x64"]])

        assert [p.key for p in plan] == ["@swc/core-linux-x64-gnu@1.4.0"]
        assert plan[0].required_by == "@swc/core@1.4.0"
