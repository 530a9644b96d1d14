"""Backend stats page: gathers metrics and live health, then renders HTML."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from fastapi import HTTPException

from chronos.config import Settings
from chronos.infra.mongo import MongoConnection
from chronos.infra.redis_client import RedisConnection
from chronos.observability.metrics import MetricsAggregator
from chronos.stats.collections import CollectionStatsCache
from chronos.stats.coverage import (
    CoverageReport,
    CoverageSummary,
    detect_coverage_report,
    read_coverage_summary,
)
from chronos.stats.health import MongoHealthProbe, RedisHealthProbe
from chronos.stats.renderer import DashboardData, render_dashboard
from chronos.utils.time import now_ms

logger = logging.getLogger("chronos.stats")


class StatsService:
    """Development-only diagnostics page.

    Every render snapshots the metrics aggregator, probes MongoDB and Redis
    (state + ping), reads collection sizes through the TTL cache and picks up
    coverage artifacts when present. Probe failures degrade to empty fields.
    """

    def __init__(
        self,
        settings: Settings,
        metrics: MetricsAggregator,
        mongo: MongoConnection,
        redis: RedisConnection,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.settings = settings
        self.metrics = metrics
        self.mongo_probe = MongoHealthProbe(mongo)
        self.redis_probe = RedisHealthProbe(redis)
        self.collections = CollectionStatsCache(mongo, clock=clock)
        self._clock = clock
        self.started_at_ms = clock()

    def is_enabled(self) -> bool:
        return self.settings.is_development

    def assert_enabled(self) -> None:
        if not self.is_enabled():
            raise HTTPException(status_code=404, detail="Not Found")

    async def read_coverage(self) -> Optional[CoverageSummary]:
        if not self.is_enabled() or not self.settings.stats_show_coverage:
            return None
        return await asyncio.to_thread(
            read_coverage_summary, self.settings.stats_coverage_summary_path
        )

    async def coverage_report(self) -> Optional[CoverageReport]:
        if not self.is_enabled() or not self.settings.stats_serve_coverage_report:
            return None
        return await asyncio.to_thread(
            detect_coverage_report,
            self.settings.stats_coverage_report_dir,
            embed=self.settings.stats_embed_coverage_report,
        )

    async def render_html(self) -> str:
        snapshot = self.metrics.get_snapshot()

        mongo = await self.mongo_probe.probe()
        collections = await self.collections.get_collection_stats(
            ttl_ms=self.settings.stats_cache_ttl_ms,
            max_collections=self.settings.stats_max_collections,
            enabled=self.settings.stats_enable_collection_counts,
        )
        redis = await self.redis_probe.probe()
        coverage = await self.read_coverage()
        coverage_report = await self.coverage_report()

        logger.debug(
            f"Stats render: mongo={mongo.state} redis={redis.state} "
            f"collections={None if collections is None else len(collections.collections)}"
        )

        return render_dashboard(
            DashboardData(
                now_ms=snapshot.now,
                started_at_ms=self.started_at_ms,
                metrics=snapshot,
                mongo=mongo,
                mongo_db_name=self.mongo_probe.database_name,
                redis=redis,
                collections=collections,
                coverage=coverage,
                coverage_report=coverage_report,
            )
        )
