"""FastAPI dependencies resolving the per-app components on ``app.state``."""

from __future__ import annotations

from fastapi import Request

from chronos.config import Settings
from chronos.infra.mongo import MongoConnection
from chronos.infra.redis_client import RedisConnection
from chronos.observability.metrics import MetricsAggregator
from chronos.stats.service import StatsService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_metrics(request: Request) -> MetricsAggregator:
    return request.app.state.metrics


def get_mongo(request: Request) -> MongoConnection:
    return request.app.state.mongo


def get_redis(request: Request) -> RedisConnection:
    return request.app.state.redis


def get_stats_service(request: Request) -> StatsService:
    return request.app.state.stats
