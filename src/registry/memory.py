"""In-memory registry used by tests and offline dry runs."""

from __future__ import annotations

import asyncio
import copy
from collections import Counter
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Set

from sync.errors import PackumentFetchError, RegistryError
from sync.models import Packument, package_key
from versioning.npm import resolve_version

from .base import RegistryClient, parse_package_spec


class InMemoryRegistryClient(RegistryClient):
    """Registry backed by dicts of raw packument documents and tarballs.

    Every call is counted in ``calls`` keyed by ``(method, argument)`` so tests
    can assert on request coalescing. ``latency`` inserts a real suspension
    point into each call.
    """

    def __init__(self, latency: float = 0.0, chunk_size: int = 4):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._tarballs: Dict[str, bytes] = {}
        self._latency = latency
        self._chunk_size = chunk_size
        self.failing: Set[str] = set()
        self.failing_tarballs: Set[str] = set()
        self.calls: Counter = Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    def add_package(
        self,
        name: str,
        versions: Dict[str, Dict[str, Any]],
        dist_tags: Optional[Dict[str, str]] = None,
    ) -> None:
        """Register a package.

        Args:
            name: Package name.
            versions: Map of version to manifest fields (dependencies etc).
            dist_tags: Defaults to ``latest`` = last version given.
        """
        docs = {}
        for ver, fields in versions.items():
            doc = {"name": name, "version": ver}
            doc.update(fields)
            docs[ver] = doc
        tags = dict(dist_tags) if dist_tags is not None else {}
        if not tags and versions:
            tags["latest"] = list(versions.keys())[-1]
        self._documents[name] = {"name": name, "dist-tags": tags, "versions": docs}

    def add_tarball(self, name: str, version: str, payload: bytes) -> None:
        self._tarballs[package_key(name, version)] = payload

    def add_tarballs(self, name: str, versions: Iterable[str]) -> None:
        for ver in versions:
            self.add_tarball(name, ver, f"{name}-{ver}".encode())

    def call_count(self, method: str, argument: str) -> int:
        return self.calls[(method, argument)]

    async def _pause(self) -> None:
        await asyncio.sleep(self._latency)

    async def fetch_packument(self, name: str) -> Packument:
        self.calls[("packument", name)] += 1
        await self._pause()
        if name in self.failing or name not in self._documents:
            raise PackumentFetchError(name, "404 Not Found", 404)
        return Packument.from_document(self._documents[name])

    async def fetch_manifest(self, spec: str) -> Dict[str, Any]:
        self.calls[("manifest", spec)] += 1
        await self._pause()
        name, version_range = parse_package_spec(spec)
        doc = self._documents.get(name)
        if doc is None or name in self.failing:
            raise RegistryError(f"Manifest not found: {spec}", 404)
        resolved = resolve_version(Packument.from_document(doc), version_range or "latest")
        if resolved is None:
            raise RegistryError(f"No matching version for {spec}", 404)
        return copy.deepcopy(doc["versions"][resolved])

    async def fetch_tarball(self, spec: str) -> AsyncIterator[bytes]:
        self.calls[("tarball", spec)] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self._pause()
            if spec in self.failing_tarballs or spec not in self._tarballs:
                raise RegistryError(f"Tarball not found: {spec}", 404)
            payload = self._tarballs[spec]
            for start in range(0, len(payload), self._chunk_size):
                yield payload[start:start + self._chunk_size]
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
