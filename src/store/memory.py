"""In-memory local package store."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sync.models import CachedPackage, package_key

from .base import LocalPackageStore


class InMemoryPackageStore(LocalPackageStore):
    """Store keeping tarballs in a dict keyed by ``name@version``."""

    def __init__(self) -> None:
        self._versions: Dict[str, Dict[str, bytes]] = {}
        self._latest: Dict[str, str] = {}

    def seed(self, name: str, versions: Iterable[str], latest: Optional[str] = None) -> None:
        """Mark versions as already cached (with placeholder payloads)."""
        bucket = self._versions.setdefault(name, {})
        for version in versions:
            bucket.setdefault(version, b"")
        if latest:
            self._latest[name] = latest

    def payload(self, name: str, version: str) -> Optional[bytes]:
        return self._versions.get(name, {}).get(version)

    def list_cached(self) -> List[CachedPackage]:
        return [
            CachedPackage.of(name, versions.keys(), self._latest.get(name))
            for name, versions in sorted(self._versions.items())
            if versions
        ]

    def has_version(self, name: str, version: str) -> bool:
        return version in self._versions.get(name, {})

    def write(self, name: str, version: str, payload: bytes) -> str:
        self._versions.setdefault(name, {})[version] = bytes(payload)
        return f"memory://{package_key(name, version)}"
