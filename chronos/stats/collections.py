"""Time-boxed cache over the document store's collection sizes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from chronos.infra.mongo import CONNECTED, MongoConnection
from chronos.utils.time import now_ms

logger = logging.getLogger("chronos.stats.collections")


@dataclass(frozen=True)
class CollectionStat:
    name: str
    estimated_docs: Optional[int]


@dataclass(frozen=True)
class CollectionStats:
    captured_at_ms: float
    collections: list[CollectionStat] = field(default_factory=list)
    total_estimated_docs: Optional[int] = 0


class CollectionStatsCache:
    """Single-slot cache of ``list collections + estimated count`` results.

    Results are reused until ``ttl_ms`` has elapsed. Two renders that both see a
    stale slot may both recompute; the last one to finish wins.
    """

    def __init__(
        self,
        connection: MongoConnection,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.connection = connection
        self._clock = clock
        self._cached: Optional[CollectionStats] = None

    @property
    def cached(self) -> Optional[CollectionStats]:
        return self._cached

    async def get_collection_stats(
        self,
        ttl_ms: int,
        max_collections: int,
        enabled: bool = True,
    ) -> Optional[CollectionStats]:
        if not enabled:
            return None
        if self.connection.ready_state != CONNECTED or self.connection.db is None:
            return None

        now = self._clock()
        if self._cached is not None and now - self._cached.captured_at_ms < ttl_ms:
            return self._cached

        try:
            names = await self.connection.list_collection_names(max_collections)
        except Exception as exc:
            logger.warning(f"Listing collections failed: {exc}")
            return None

        names = list(names)[: max(0, max_collections)]
        collections = list(await asyncio.gather(*(self._count(name) for name in names)))

        # Failed counts contribute nothing; the total starts at zero and is never None.
        total = 0
        for stat in collections:
            if stat.estimated_docs is not None:
                total += stat.estimated_docs

        self._cached = CollectionStats(
            captured_at_ms=now,
            collections=collections,
            total_estimated_docs=total,
        )
        return self._cached

    async def _count(self, name: str) -> CollectionStat:
        try:
            estimated = await self.connection.estimated_count(name)
        except Exception as exc:
            logger.debug(f"Estimated count failed for {name!r}: {exc}")
            return CollectionStat(name=name, estimated_docs=None)
        return CollectionStat(name=name, estimated_docs=int(estimated))
