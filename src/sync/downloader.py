"""Bounded concurrent tarball downloader."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from common.logging_utils import Timer

from .errors import DownloadError
from .models import DownloadResult, PackageCoordinate, PackageToDownload, clamp_concurrency, package_key
from .pool import run_bounded
from .progress import ProgressEvent, ProgressSink, emit

if TYPE_CHECKING:
    from registry.base import RegistryClient
    from store.base import LocalPackageStore

logger = logging.getLogger(__name__)


class DownloadEngine:
    """Executes a download plan with a fixed-size worker pool.

    Each item is independent: a failure is recorded on that item's result
    and never aborts the batch, so the failed subset can be retried.
    """

    def __init__(
        self,
        registry: "RegistryClient",
        store: "LocalPackageStore",
        concurrency: Optional[int] = None,
        progress: Optional[ProgressSink] = None,
    ):
        self._registry = registry
        self._store = store
        self._concurrency = clamp_concurrency(concurrency)
        self._progress = progress
        self._manifests: Dict[str, Dict[str, Any]] = {}

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def download_all(
        self,
        targets: List[PackageToDownload],
        concurrency: Optional[int] = None,
    ) -> List[DownloadResult]:
        """Download every target; results align with ``targets``.

        Repeated ``(name, version)`` entries are fetched once and share
        their result.

        Args:
            targets: Plan entries.
            concurrency: Worker count, clamped to [1, 50]; engine default
                when None.

        Returns:
            One DownloadResult per target, failed ones carrying ``error``.
        """
        workers = clamp_concurrency(concurrency) if concurrency is not None else self._concurrency
        unique: Dict[str, PackageCoordinate] = {}
        for target in targets:
            unique.setdefault(target.key, PackageCoordinate(target.name, target.version))
        coordinates = list(unique.values())
        total = len(coordinates)
        logger.info("Downloading %d packages with %d workers", total, workers)
        completed = 0

        async def _download(coordinate: PackageCoordinate) -> DownloadResult:
            nonlocal completed
            result = await self.download_one(coordinate.name, coordinate.version)
            completed += 1
            emit(self._progress, ProgressEvent(
                "downloading", completed, total, package=coordinate.key,
                message="ok" if result.ok else f"failed: {result.error}",
            ))
            return result

        with Timer() as timer:
            results = await run_bounded(coordinates, _download, workers)
        by_key = {r.key: r for r in results if r is not None}
        failed = sum(1 for r in by_key.values() if not r.ok)
        logger.info(
            "Downloaded %d/%d packages in %d ms (%d failed)",
            total - failed, total, timer.duration_ms(), failed,
        )
        return [by_key[t.key] for t in targets]

    async def download_one(self, name: str, version: str) -> DownloadResult:
        """Fetch, verify and persist one tarball; never raises."""
        spec = package_key(name, version)
        try:
            return await self._download(name, version)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Failed to download %s: %s", spec, exc)
            return DownloadResult(name=name, version=version, error=str(exc))

    async def _download(self, name: str, version: str) -> DownloadResult:
        spec = package_key(name, version)
        logger.debug("Downloading %s", spec)
        sha1 = hashlib.sha1()
        sha512 = hashlib.sha512()
        payload = bytearray()
        size = 0
        # one pass: hash while streaming into a single growing buffer
        async for chunk in self._registry.fetch_tarball(spec):
            if not chunk:
                continue
            sha1.update(chunk)
            sha512.update(chunk)
            payload.extend(chunk)
            size += len(chunk)
        if size == 0:
            raise DownloadError(spec, "downloaded tarball is empty")

        location = await asyncio.to_thread(self._store.write, name, version, payload)
        manifest = await self.manifest(name, version)

        shasum = sha1.hexdigest()
        integrity = "sha512-" + base64.b64encode(sha512.digest()).decode("ascii")
        logger.info("Downloaded %s (shasum: %s, size: %d bytes)", spec, shasum, size)
        return DownloadResult(
            name=name,
            version=version,
            shasum=shasum,
            integrity=integrity,
            size=size,
            manifest=manifest,
            location=location,
        )

    async def manifest(self, name: str, version: str) -> Dict[str, Any]:
        """Full manifest for ``name@version``, fetched once per engine."""
        spec = package_key(name, version)
        cached = self._manifests.get(spec)
        if cached is None:
            cached = await self._registry.fetch_manifest(spec)
            self._manifests[spec] = cached
        return cached
