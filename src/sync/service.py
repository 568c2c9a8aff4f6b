"""Entry points tying the store, registry, resolver and downloader together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from .downloader import DownloadEngine
from .metadata_cache import MetadataCache
from .models import (
    CachedPackage,
    DownloadBatch,
    DownloadResult,
    PackageToDownload,
    PlatformConfig,
    SyncOptions,
    dedupe_plan,
)
from .platform import PlatformPlanner
from .progress import ProgressSink
from .resolver import DependencyResolver

if TYPE_CHECKING:
    from registry.base import RegistryClient
    from store.base import LocalPackageStore

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of a full sync run."""
    scanned: int
    plan: List[PackageToDownload]
    platforms: List[str] = field(default_factory=list)
    batch: Optional[DownloadBatch] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "scanned": self.scanned,
            "platforms": self.platforms,
            "toDownload": [p.to_dict() for p in self.plan],
        }
        if self.batch is not None:
            data["download"] = {
                "success": self.batch.success,
                "total": self.batch.total,
                "succeeded": self.batch.succeeded,
                "failed": self.batch.failed,
                "results": [r.to_dict() for r in self.batch.results],
                "failedPackages": [p.to_dict() for p in self.batch.failed_packages],
            }
        return data


class SyncService:
    """Resolve what the local store lacks and fetch it."""

    def __init__(
        self,
        registry: "RegistryClient",
        store: "LocalPackageStore",
        progress: Optional[ProgressSink] = None,
    ):
        self._registry = registry
        self._store = store
        self._progress = progress
        self._resolver = DependencyResolver(registry, progress)

    async def resolve(
        self,
        cached: Optional[List[CachedPackage]] = None,
        options: Optional[SyncOptions] = None,
    ) -> List[PackageToDownload]:
        """Compute the download plan.

        Options are validated before the store is listed or the registry
        contacted.

        Raises:
            ConfigError: if ``options`` are invalid.
        """
        options = (options or SyncOptions()).validate()
        if cached is None:
            cached = self._store.list_cached()
        return await self._resolver.resolve(cached, options)

    async def plan_platform_binaries(
        self,
        cached: List[CachedPackage],
        platforms: Iterable[PlatformConfig],
        concurrency: Optional[int] = None,
        cache: Optional[MetadataCache] = None,
    ) -> List[PackageToDownload]:
        """Plan platform binaries, reusing ``cache`` when one is given."""
        run_cache = cache if cache is not None else MetadataCache(self._registry)
        try:
            return await PlatformPlanner(run_cache).plan(cached, platforms, concurrency)
        finally:
            if cache is None:
                run_cache.clear()

    async def download(
        self, plan: List[PackageToDownload], concurrency: Optional[int] = None
    ) -> List[DownloadResult]:
        engine = DownloadEngine(self._registry, self._store, concurrency, self._progress)
        return await engine.download_all(plan)

    async def retry_failed(
        self,
        plan: List[PackageToDownload],
        results: List[DownloadResult],
        concurrency: Optional[int] = None,
        attempts: int = 1,
    ) -> List[DownloadResult]:
        """Re-run exactly the failed subset, up to ``attempts`` passes.

        Returns:
            ``results`` with each retried item replaced by its latest outcome.
        """
        merged = {r.key: r for r in results}
        for attempt in range(1, attempts + 1):
            failed = [p for p in dedupe_plan(plan) if p.key in merged and not merged[p.key].ok]
            if not failed:
                break
            logger.info("Retry %d/%d: %d failed packages", attempt, attempts, len(failed))
            for result in await self.download(failed, concurrency):
                merged[result.key] = result
        return [merged[r.key] for r in results]

    async def sync(
        self,
        options: Optional[SyncOptions] = None,
        platforms: Iterable[PlatformConfig] = (),
        download: bool = False,
        retries: int = 0,
    ) -> SyncReport:
        """Scan, resolve, add platform binaries, optionally download.

        Raises:
            ConfigError: if ``options`` are invalid.
        """
        options = (options or SyncOptions()).validate()
        targets = list(platforms)
        cached = self._store.list_cached()
        # one packument cache for resolution and platform planning
        state = self._resolver.new_run_state()
        try:
            plan = await self._resolver.resolve(cached, options, state)
            if targets:
                plan = dedupe_plan(plan + await self.plan_platform_binaries(
                    cached, targets, options.concurrency, state.cache
                ))
        finally:
            state.cache.clear()
        report = SyncReport(scanned=len(cached), plan=plan, platforms=[p.label for p in targets])
        logger.info("Plan: %d packages to download", len(plan))

        if download and plan:
            results = await self.download(plan, options.concurrency)
            if retries > 0:
                results = await self.retry_failed(plan, results, options.concurrency, retries)
            report.batch = DownloadBatch.from_results(plan, results)
        return report
