"""Per-run packument cache with in-flight request coalescing."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from common.logging_utils import extra_context, is_debug_enabled

from .errors import PackumentFetchError
from .models import Packument
from .pool import run_bounded

if TYPE_CHECKING:
    from registry.base import RegistryClient

logger = logging.getLogger(__name__)


class MetadataCache:
    """Memoizes packuments for one resolution run.

    Concurrent requests for the same name share a single registry call. A
    failed fetch is logged and not cached, so a later request retries.
    Dict updates never straddle an ``await``, which keeps both maps
    consistent on the event loop without a lock.
    """

    def __init__(self, registry: "RegistryClient"):
        self._registry = registry
        self._results: Dict[str, Packument] = {}
        self._inflight: Dict[str, "asyncio.Task[Optional[Packument]]"] = {}
        self.fetch_count = 0

    def __contains__(self, name: str) -> bool:
        return name in self._results

    def __len__(self) -> int:
        return len(self._results)

    def peek(self, name: str) -> Optional[Packument]:
        """Return a completed entry without fetching."""
        return self._results.get(name)

    async def get(self, name: str) -> Optional[Packument]:
        """Return the packument for ``name``, or None when unavailable."""
        cached = self._results.get(name)
        if cached is not None:
            return cached

        task = self._inflight.get(name)
        if task is None:
            task = asyncio.ensure_future(self._fetch(name))
            self._inflight[name] = task
        elif is_debug_enabled(logger):
            logger.debug(
                "Joining in-flight packument fetch",
                extra=extra_context(event="cache_coalesce", component="metadata_cache", target=name),
            )
        # shield: one cancelled waiter must not cancel the shared fetch
        return await asyncio.shield(task)

    async def _fetch(self, name: str) -> Optional[Packument]:
        self.fetch_count += 1
        try:
            packument = await self._registry.fetch_packument(name)
        except PackumentFetchError as exc:
            logger.warning("Failed to get packument for %s: %s", name, exc)
            return None
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Unexpected error fetching packument for %s: %s", name, exc)
            return None
        finally:
            self._inflight.pop(name, None)
        self._results[name] = packument
        return packument

    async def prefetch(self, names: Iterable[str], concurrency: int) -> None:
        """Fetch every distinct uncached name through a bounded pool."""
        pending = [n for n in dict.fromkeys(names) if n not in self._results]
        if not pending:
            return
        logger.debug("Prefetching %d packuments", len(pending))
        await run_bounded(pending, self.get, concurrency)

    def clear(self) -> None:
        """Release completed and in-flight entries."""
        self._results.clear()
        self._inflight.clear()
