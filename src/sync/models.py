"""Data models for cache analysis, resolution and download."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from constants import Constants

from .errors import ConfigError

logger = logging.getLogger(__name__)


def package_key(name: str, version: str) -> str:
    """Return the ``name@version`` key used for dedup and requiredBy chains."""
    return f"{name}@{version}"


class DownloadReason(Enum):
    """Why a package version ended up in the download plan."""
    NEWER_VERSION = "newer-version"
    MISSING_DEPENDENCY = "missing-dependency"
    SIBLING_VERSION = "sibling-version"
    PLATFORM_BINARY = "platform-binary"


@dataclass(frozen=True)
class PackageCoordinate:
    """A resolved, concrete package version."""
    name: str
    version: str

    @property
    def key(self) -> str:
        return package_key(self.name, self.version)


@dataclass(frozen=True)
class CachedPackage:
    """Snapshot of what the local store holds for one package name."""
    name: str
    versions: FrozenSet[str]
    latest_version: Optional[str] = None

    @classmethod
    def of(cls, name: str, versions: Iterable[str], latest_version: Optional[str] = None) -> "CachedPackage":
        return cls(name=name, versions=frozenset(versions), latest_version=latest_version)


def _string_map(value: Any) -> Dict[str, str]:
    """Keep only str->str entries of a dependency map."""
    if not isinstance(value, Mapping):
        return {}
    return {k: v for k, v in value.items() if isinstance(k, str) and isinstance(v, str)}


def _string_list(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(v for v in value if isinstance(v, str))
    return None


@dataclass
class VersionManifest:
    """Trimmed projection of a registry version record.

    Only the fields needed for graph expansion and platform detection are
    kept; readme, scripts, dist and the rest are dropped on purpose.
    """
    name: str
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    peer_dependencies: Dict[str, str] = field(default_factory=dict)
    optional_dependencies: Dict[str, str] = field(default_factory=dict)
    os: Optional[Tuple[str, ...]] = None
    cpu: Optional[Tuple[str, ...]] = None
    libc: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], name: str = "", version: str = "") -> "VersionManifest":
        """Project a raw registry manifest onto the trimmed model."""
        return cls(
            name=str(doc.get("name") or name),
            version=str(doc.get("version") or version),
            dependencies=_string_map(doc.get("dependencies")),
            dev_dependencies=_string_map(doc.get("devDependencies")),
            peer_dependencies=_string_map(doc.get("peerDependencies")),
            optional_dependencies=_string_map(doc.get("optionalDependencies")),
            os=_string_list(doc.get("os")),
            cpu=_string_list(doc.get("cpu")),
            libc=_string_list(doc.get("libc")),
        )


@dataclass
class Packument:
    """All-versions metadata for one package name (trimmed)."""
    name: str
    dist_tags: Dict[str, str] = field(default_factory=dict)
    versions: Dict[str, VersionManifest] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], name: str = "") -> "Packument":
        """Build a trimmed packument from the registry JSON document."""
        pkg_name = str(doc.get("name") or name)
        raw_versions = doc.get("versions")
        versions: Dict[str, VersionManifest] = {}
        if isinstance(raw_versions, Mapping):
            for ver, manifest in raw_versions.items():
                if not isinstance(manifest, Mapping):
                    continue
                versions[ver] = VersionManifest.from_document(manifest, pkg_name, ver)
        return cls(
            name=pkg_name,
            dist_tags=_string_map(doc.get("dist-tags")),
            versions=versions,
        )

    def summary(self) -> "PackumentSummary":
        return PackumentSummary(
            name=self.name,
            dist_tags=dict(self.dist_tags),
            versions=list(self.versions.keys()),
        )


@dataclass
class PackumentSummary:
    """Refreshed upstream view of a cached package: tags and version list."""
    name: str
    dist_tags: Dict[str, str] = field(default_factory=dict)
    versions: List[str] = field(default_factory=list)


@dataclass
class ResolutionTarget:
    """A unit of work in the current BFS layer."""
    name: str
    version_range: str
    required_by: Optional[str] = None
    reason: Optional[DownloadReason] = None

    @property
    def key(self) -> str:
        return package_key(self.name, self.version_range)


@dataclass
class PackageToDownload:
    """One element of the download plan."""
    name: str
    version: str
    reason: DownloadReason
    required_by: Optional[str] = None

    @property
    def key(self) -> str:
        return package_key(self.name, self.version)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "reason": self.reason.value,
        }
        if self.required_by:
            data["requiredBy"] = self.required_by
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PackageToDownload":
        return cls(
            name=str(data["name"]),
            version=str(data["version"]),
            reason=DownloadReason(data.get("reason", DownloadReason.MISSING_DEPENDENCY.value)),
            required_by=data.get("requiredBy") or data.get("required_by"),
        )


def dedupe_plan(packages: Iterable[PackageToDownload]) -> List[PackageToDownload]:
    """Drop repeated ``(name, version)`` entries, keeping the first seen."""
    seen: Dict[str, PackageToDownload] = {}
    for pkg in packages:
        if pkg.key not in seen:
            seen[pkg.key] = pkg
    return list(seen.values())


@dataclass
class DownloadResult:
    """Outcome of fetching one tarball. ``error`` is set on failure."""
    name: str
    version: str
    shasum: Optional[str] = None
    integrity: Optional[str] = None
    size: int = 0
    manifest: Optional[Dict[str, Any]] = None
    location: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def key(self) -> str:
        return package_key(self.name, self.version)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "status": "success" if self.ok else "failed",
        }
        if self.ok:
            data.update(shasum=self.shasum, integrity=self.integrity, size=self.size)
        else:
            data["error"] = self.error
        return data


@dataclass
class DownloadBatch:
    """Summary of one download pass."""
    total: int
    succeeded: int
    failed: int
    results: List[DownloadResult]
    failed_packages: List[PackageToDownload]

    @property
    def success(self) -> bool:
        return self.failed == 0

    @classmethod
    def from_results(cls, plan: List[PackageToDownload], results: List[DownloadResult]) -> "DownloadBatch":
        failed_keys = {r.key for r in results if not r.ok}
        failed_packages = [p for p in dedupe_plan(plan) if p.key in failed_keys]
        succeeded = sum(1 for r in results if r.ok)
        return cls(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
            failed_packages=failed_packages,
        )


@dataclass(frozen=True)
class PlatformConfig:
    """Target platform tuple for binary package selection."""
    os: str
    arch: str
    libc: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.os}-{self.arch}"


PLATFORM_PRESETS: Dict[str, PlatformConfig] = {
    "linux-x64": PlatformConfig("linux", "x64", "glibc"),
    "linux-arm64": PlatformConfig("linux", "arm64", "glibc"),
    "linux-x64-musl": PlatformConfig("linux", "x64", "musl"),
    "win32-x64": PlatformConfig("win32", "x64"),
    "win32-arm64": PlatformConfig("win32", "arm64"),
    "darwin-x64": PlatformConfig("darwin", "x64"),
    "darwin-arm64": PlatformConfig("darwin", "arm64"),
}


def clamp_concurrency(value: Optional[int]) -> int:
    """Clamp a worker count into the supported range, defaulting to 5."""
    if value is None:
        return Constants.DEFAULT_CONCURRENCY
    return max(Constants.MIN_CONCURRENCY, min(Constants.MAX_CONCURRENCY, int(value)))


@dataclass
class SyncOptions:
    """Knobs for one resolution run."""
    update_to_latest: bool = False
    complete_sibling_versions: bool = False
    include_dev: bool = False
    include_peer: bool = False
    include_optional: bool = False
    max_depth: int = Constants.DEFAULT_MAX_DEPTH
    concurrency: int = Constants.DEFAULT_CONCURRENCY

    def validate(self) -> "SyncOptions":
        """Fail fast on misconfiguration.

        Raises:
            ConfigError: on non-boolean flags, negative depth or a
                non-positive concurrency.
        """
        for flag in ("update_to_latest", "complete_sibling_versions",
                     "include_dev", "include_peer", "include_optional"):
            if not isinstance(getattr(self, flag), bool):
                raise ConfigError(f"{flag} must be a boolean")
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int):
            raise ConfigError("max_depth must be an integer")
        if self.max_depth < 0:
            raise ConfigError(f"max_depth must be >= 0 (got {self.max_depth})")
        if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int):
            raise ConfigError("concurrency must be an integer")
        if self.concurrency < Constants.MIN_CONCURRENCY:
            raise ConfigError(f"concurrency must be >= 1 (got {self.concurrency})")
        if self.concurrency > Constants.MAX_CONCURRENCY:
            logger.warning(
                "Concurrency %d exceeds maximum, clamping to %d",
                self.concurrency, Constants.MAX_CONCURRENCY,
            )
            self.concurrency = Constants.MAX_CONCURRENCY
        return self
