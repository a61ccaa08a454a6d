"""
Warm-once cache population for keys that are cheap to precompute.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger

from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


@dataclass(frozen=True)
class WarmTask:
    """A key to populate, its TTL and the coroutine function producing the value."""

    key: str
    ttl_seconds: int
    fetcher: Callable[[], Awaitable[Any]]


class CacheWarmer:
    """Populates each key at most once per process.

    A key is marked as warmed before its fetch starts, so concurrent callers for
    the same key never fetch twice. A failed fetch or a failed cache write
    unmarks the key so a later trigger may retry it.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        enabled: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.enabled = enabled
        self.metrics = metrics
        self.logger = get_logger("tenders.cache_warmer")
        self._warmed: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    def is_warmed(self, key: str) -> bool:
        return key in self._warmed

    async def warm_once(self, task: WarmTask) -> bool:
        """Fetch and cache ``task.key`` unless it was already warmed.

        Returns True when this call populated the key. Errors are logged, never raised.
        """
        if not self.enabled or not self.store.available:
            return False
        if self.is_warmed(task.key):
            return False

        self._warmed.add(task.key)
        try:
            value = await task.fetcher()
            stored = await self.store.set(task.key, value, task.ttl_seconds)
        except Exception as exc:
            self._warmed.discard(task.key)
            self.logger.warning("Cache warm failed", key=task.key, error=str(exc))
            self._record("error")
            return False

        if not stored:
            self._warmed.discard(task.key)
            self.logger.warning("Cache warm write rejected", key=task.key)
            self._record("error")
            return False

        self.logger.debug("Cache warmed", key=task.key, ttl=task.ttl_seconds)
        self._record("ok")
        return True

    def schedule(self, task: WarmTask) -> Optional[asyncio.Task]:
        """Run ``warm_once`` in the background, detached from the caller."""
        if not self.enabled or not self.store.available or self.is_warmed(task.key):
            return None

        background = asyncio.get_running_loop().create_task(self.warm_once(task))
        self._tasks.add(background)
        background.add_done_callback(self._tasks.discard)
        return background

    async def drain(self) -> None:
        """Wait for scheduled warm tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def reset(self) -> None:
        self._warmed.clear()

    def _record(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("tender_cache_warm_total", result=result)
