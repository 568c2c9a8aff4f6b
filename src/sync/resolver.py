"""Dependency resolver: find what the local cache is missing.

The resolver walks dependency graphs breadth first, one layer at a time,
against registry packuments:

1. every cached ``name@version`` is a root, so a package that needs no upgrade
   still gets its dependency subtree checked;
2. optional update (dist-tag ``latest``) and sibling-version roots are added;
3. each layer prefetches its packuments concurrently, then resolves and
   expands its targets; layer ``k + 1`` starts only after layer ``k`` ends;
4. the plan is deduplicated by ``(name, version)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Set

from constants import Constants
from common.logging_utils import Timer
from versioning.npm import resolve_version, satisfies_any

from .metadata_cache import MetadataCache
from .models import (
    CachedPackage,
    DownloadReason,
    PackageToDownload,
    PackumentSummary,
    ResolutionTarget,
    SyncOptions,
    VersionManifest,
    clamp_concurrency,
    dedupe_plan,
    package_key,
)
from .pool import run_bounded
from .progress import ProgressEvent, ProgressSink, emit
from .siblings import complete_sibling_versions

if TYPE_CHECKING:
    from registry.base import RegistryClient

logger = logging.getLogger(__name__)


@dataclass
class ResolverRunState:
    """Mutable state owned by exactly one resolution call."""
    cache: MetadataCache
    # name@version keys whose resolution has been handled
    processed: Set[str] = field(default_factory=set)
    # name@version keys whose dependencies have been extracted
    analyzed: Set[str] = field(default_factory=set)
    layers: int = 0


def collect_dependencies(manifest: VersionManifest, options: SyncOptions) -> Dict[str, str]:
    """Dependency map to follow for one version, per the include flags.

    Later maps win for a name listed in several (optional overrides peer
    overrides dev overrides regular).
    """
    deps: Dict[str, str] = dict(manifest.dependencies)
    if options.include_dev:
        deps.update(manifest.dev_dependencies)
    if options.include_peer:
        deps.update(manifest.peer_dependencies)
    if options.include_optional:
        deps.update(manifest.optional_dependencies)
    return deps


class DependencyResolver:
    """Layered breadth-first resolver over registry metadata.

    The resolver itself keeps no per-run state; ``analyze`` and ``resolve``
    build a fresh ``ResolverRunState`` so one instance can serve independent,
    even concurrent, runs.
    """

    def __init__(
        self,
        registry: "RegistryClient",
        progress: Optional[ProgressSink] = None,
    ):
        self._registry = registry
        self._progress = progress

    def new_run_state(self) -> ResolverRunState:
        return ResolverRunState(cache=MetadataCache(self._registry))

    async def refresh_metadata(
        self,
        cached: List[CachedPackage],
        concurrency: int = Constants.DEFAULT_CONCURRENCY,
        state: Optional[ResolverRunState] = None,
    ) -> List[PackumentSummary]:
        """Fetch upstream dist-tags and version lists for cached packages.

        Packages whose packument cannot be fetched are left out.
        """
        run = state or self.new_run_state()
        total = len(cached)
        logger.info("Refreshing metadata for %d packages concurrently...", total)
        done = 0

        async def _refresh(pkg: CachedPackage) -> Optional[PackumentSummary]:
            nonlocal done
            packument = await run.cache.get(pkg.name)
            done += 1
            emit(self._progress, ProgressEvent("refreshing", done, total, package=pkg.name))
            return packument.summary() if packument else None

        results = await run_bounded(cached, _refresh, clamp_concurrency(concurrency))
        summaries = [s for s in results if s is not None]
        logger.info("Refreshed metadata: %d/%d packages", len(summaries), total)
        return summaries

    async def resolve(
        self,
        cached: List[CachedPackage],
        options: SyncOptions,
        state: Optional[ResolverRunState] = None,
    ) -> List[PackageToDownload]:
        """Refresh metadata and analyze on one run state.

        Each packument is fetched at most once across both steps. A caller
        passing ``state`` owns it and its cache stays populated afterwards.
        """
        options.validate()
        run = state or self.new_run_state()
        try:
            refreshed = await self.refresh_metadata(cached, options.concurrency, run)
            return await self._analyze(run, cached, refreshed, options)
        finally:
            if state is None:
                run.cache.clear()

    async def analyze(
        self,
        cached: List[CachedPackage],
        refreshed: List[PackumentSummary],
        options: SyncOptions,
    ) -> List[PackageToDownload]:
        """Compute the deduplicated download plan.

        Args:
            cached: Snapshot of the local store.
            refreshed: Upstream summaries for cached packages.
            options: Run options; validated before any network activity.

        Returns:
            Packages to download, unique by ``(name, version)``.

        Raises:
            ConfigError: if ``options`` are invalid.
        """
        options.validate()
        state = self.new_run_state()
        try:
            return await self._analyze(state, cached, refreshed, options)
        finally:
            state.cache.clear()

    def seed_targets(
        self,
        cached: List[CachedPackage],
        refreshed: List[PackumentSummary],
        options: SyncOptions,
    ) -> List[ResolutionTarget]:
        """Build the first BFS layer, deduplicated by ``name@range``."""
        layer: Dict[str, ResolutionTarget] = {}

        def _add(target: ResolutionTarget) -> None:
            layer.setdefault(target.key, target)

        for pkg in cached:
            for version in sorted(pkg.versions):
                _add(ResolutionTarget(
                    pkg.name, version,
                    required_by=Constants.REQUIRED_BY_LOCAL_CACHE,
                    reason=DownloadReason.MISSING_DEPENDENCY,
                ))

        summaries = {s.name: s for s in refreshed}
        for pkg in cached:
            summary = summaries.get(pkg.name)
            if summary is None:
                continue
            if options.update_to_latest:
                latest = summary.dist_tags.get("latest")
                if latest and latest not in pkg.versions:
                    _add(ResolutionTarget(
                        pkg.name, latest,
                        required_by=Constants.REQUIRED_BY_UPDATE,
                        reason=DownloadReason.NEWER_VERSION,
                    ))
            if options.complete_sibling_versions:
                siblings = complete_sibling_versions(pkg.versions, summary.versions)
                for version in sorted(siblings):
                    _add(ResolutionTarget(
                        pkg.name, version,
                        required_by=Constants.REQUIRED_BY_SIBLINGS,
                        reason=DownloadReason.SIBLING_VERSION,
                    ))
        return list(layer.values())

    async def _analyze(
        self,
        state: ResolverRunState,
        cached: List[CachedPackage],
        refreshed: List[PackumentSummary],
        options: SyncOptions,
    ) -> List[PackageToDownload]:
        cached_map: Mapping[str, CachedPackage] = {p.name: p for p in cached}
        missing: List[PackageToDownload] = []
        layer = self.seed_targets(cached, refreshed, options)
        depth = 0
        processed_targets = 0

        with Timer() as timer:
            while layer and depth <= options.max_depth:
                logger.info("Analyzing layer %d with %d packages...", depth, len(layer))
                emit(self._progress, ProgressEvent(
                    "analyzing", processed_targets, processed_targets + len(layer),
                    depth=depth, message=f"layer {depth} started",
                ))
                state.layers += 1

                await state.cache.prefetch((t.name for t in layer), options.concurrency)

                next_layer: List[ResolutionTarget] = []
                next_seen: Set[str] = set()
                for target in layer:
                    processed_targets += 1
                    try:
                        await self._process_target(
                            state, target, depth, cached_map, options,
                            missing, next_layer, next_seen,
                        )
                    except Exception as exc:  # pylint: disable=broad-exception-caught
                        logger.warning(
                            "Failed to analyze %s@%s: %s", target.name, target.version_range, exc
                        )
                layer = next_layer
                depth += 1

        plan = dedupe_plan(missing)
        logger.info(
            "Analysis complete: found %d missing packages across %d layers in %d ms",
            len(plan), state.layers, timer.duration_ms(),
        )
        emit(self._progress, ProgressEvent(
            "completed", processed_targets, processed_targets,
            message=f"{len(plan)} packages to download",
        ))
        return plan

    async def _process_target(
        self,
        state: ResolverRunState,
        target: ResolutionTarget,
        depth: int,
        cached_map: Mapping[str, CachedPackage],
        options: SyncOptions,
        missing: List[PackageToDownload],
        next_layer: List[ResolutionTarget],
        next_seen: Set[str],
    ) -> None:
        """Resolve one target, record it if missing, enqueue its dependencies."""
        packument = await state.cache.get(target.name)
        resolved = resolve_version(packument, target.version_range) if packument else None
        if resolved is None:
            logger.warning("Could not resolve version for %s@%s", target.name, target.version_range)
            return

        key = package_key(target.name, resolved)
        if key in state.processed:
            return
        state.processed.add(key)

        cached_pkg = cached_map.get(target.name)
        if cached_pkg is None or resolved not in cached_pkg.versions:
            reason = target.reason or (
                DownloadReason.NEWER_VERSION if depth == 0 else DownloadReason.MISSING_DEPENDENCY
            )
            missing.append(PackageToDownload(target.name, resolved, reason, target.required_by))

        if key in state.analyzed:
            return
        state.analyzed.add(key)

        manifest = packument.versions.get(resolved)
        if manifest is None:
            return
        for dep_name, dep_range in collect_dependencies(manifest, options).items():
            dep_cached = cached_map.get(dep_name)
            if dep_cached is not None and satisfies_any(dep_cached.versions, dep_range):
                continue
            next_key = package_key(dep_name, dep_range)
            if next_key in next_seen:
                continue
            next_seen.add(next_key)
            next_layer.append(ResolutionTarget(dep_name, dep_range, required_by=key))
