"""Chronos — FastAPI application entry point."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from chronos.api.deps import get_metrics, get_mongo, get_redis
from chronos.api.stats import router as stats_router
from chronos.config import Settings, get_settings
from chronos.infra.mongo import CONNECTED, MongoConnection
from chronos.infra.monitor import ConnectionMonitor
from chronos.infra.redis_client import READY, RedisConnection
from chronos.logging_config import setup_logging
from chronos.observability.metrics import MetricsAggregator
from chronos.request_logging.record import build_request_log, extract_user_id
from chronos.request_logging.service import RequestLoggingService
from chronos.stats.coverage import REPORT_URL
from chronos.stats.service import StatsService
from chronos.utils.time import utc_now

logger = logging.getLogger("chronos")

SERVICE_NAME = "chronos"
VERSION = "0.1.0"


def _startup_checks(settings: Settings) -> None:
    """Log the effective configuration and anything that looks misconfigured."""
    logger.info(f"  Environment: {settings.environment or '(unset)'}")
    logger.info(f"  MongoDB: {settings.build_mongo_uri().split('@')[-1]}")
    logger.info(f"  Redis: {settings.build_redis_url().split('@')[-1]}")

    if settings.is_development:
        logger.info("✓ Stats page enabled at /stats")
    else:
        logger.info("○ Stats page disabled (APP_ENV is not a development alias)")

    if settings.is_production and not settings.cors_origins_list:
        logger.warning("⚠  APP_ENV=production but CORS_ORIGINS is empty")

    if not settings.request_logging_enabled:
        logger.info("○ Request logging disabled (REQUEST_LOGGING_ENABLED=false)")


def _mount_coverage_report(app: FastAPI, settings: Settings) -> None:
    if not settings.is_development or not settings.stats_serve_coverage_report:
        return
    report_dir = Path(settings.stats_coverage_report_dir).resolve()
    if report_dir.is_dir():
        app.mount(
            REPORT_URL.rstrip("/"),
            StaticFiles(directory=report_dir, html=True),
            name="coverage",
        )
        logger.info(f"✓ Coverage report served from {report_dir}")


def create_app(
    settings: Optional[Settings] = None,
    *,
    mongo: Optional[MongoConnection] = None,
    redis: Optional[RedisConnection] = None,
) -> FastAPI:
    """Build the application with one set of process-lifetime components."""
    settings = settings or get_settings()

    if mongo is None:
        mongo = MongoConnection(
            settings.build_mongo_uri(),
            database_name=settings.mongo_db_name,
            server_selection_timeout_ms=settings.mongo_server_selection_timeout_ms,
        )
    if redis is None:
        redis = RedisConnection(
            settings.build_redis_url(),
            connect_timeout_ms=settings.redis_connect_timeout_ms,
        )

    metrics = MetricsAggregator(latency_samples=settings.stats_latency_samples)
    request_logging = RequestLoggingService(mongo, enabled=settings.request_logging_enabled)
    stats = StatsService(settings, metrics, mongo, redis)
    monitor = ConnectionMonitor([mongo, redis], interval_ms=settings.health_check_interval_ms)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle."""
        setup_logging(settings.log_level, settings.log_format)
        _startup_checks(settings)

        # Dependencies are best-effort: the app serves even if they are down.
        await mongo.connect()
        await redis.connect()
        await monitor.start()
        logger.info("✦ Chronos API started")

        yield

        await monitor.stop()
        await request_logging.drain()
        await redis.close()
        await mongo.close()
        logger.info("✦ Chronos API shutting down")

    app = FastAPI(
        title="Chronos",
        description="Backend application shell with live diagnostics",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.mongo = mongo
    app.state.redis = redis
    app.state.request_logging = request_logging
    app.state.stats = stats
    app.state.monitor = monitor

    # Rate limiting
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
    )
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers middleware
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Request tracing, metrics and access log middleware
    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        started_at = utc_now()
        start = time.perf_counter()
        metrics.on_request_start()

        status_code = 500
        error: Optional[BaseException] = None
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            error = exc
            logger.error(
                "request failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error_name": type(exc).__name__,
                },
            )
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            metrics.on_request_finish(duration_ms)
            request_logging.dispatch(
                build_request_log(
                    created_at=started_at,
                    duration_ms=duration_ms,
                    method=request.method,
                    path=request.url.path,
                    query=request.query_params,
                    status_code=status_code,
                    ip=request.client.host if request.client else None,
                    headers=request.headers,
                    user=getattr(request.state, "user", None),
                    error=error,
                    include_query=settings.request_logging_include_query,
                )
            )

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "user_id": extract_user_id(getattr(request.state, "user", None)),
            },
        )
        return response

    app.include_router(stats_router)
    _register_core_routes(app)
    _mount_coverage_report(app, settings)
    return app


def _register_core_routes(app: FastAPI) -> None:
    @app.get("/")
    async def root():
        return JSONResponse(
            {
                "service": SERVICE_NAME,
                "status": "ok",
                "endpoints": {
                    "health": "/api/health",
                    "metrics": "/api/metrics",
                    "stats": "/stats",
                    "docs": "/docs",
                },
            }
        )

    @app.get("/api/health")
    async def health_check(
        mongo: MongoConnection = Depends(get_mongo),
        redis: RedisConnection = Depends(get_redis),
    ):
        mongo_ready = mongo.ready_state == CONNECTED
        redis_ready = redis.status == READY
        return {
            "status": "healthy" if mongo_ready and redis_ready else "degraded",
            "service": SERVICE_NAME,
            "version": VERSION,
            "mongo_connected": mongo_ready,
            "redis_connected": redis_ready,
        }

    @app.get("/api/health/live")
    async def liveness_check():
        return {"status": "alive", "service": SERVICE_NAME}

    @app.get("/api/health/ready")
    async def readiness_check(
        response: Response,
        mongo: MongoConnection = Depends(get_mongo),
        redis: RedisConnection = Depends(get_redis),
    ):
        checks = {
            "mongo": mongo.ready_state == CONNECTED,
            "redis": redis.status == READY,
        }
        ready = all(checks.values())
        if not ready:
            response.status_code = 503
        return {"status": "ready" if ready else "not_ready", "checks": checks}

    @app.get("/api/metrics")
    async def get_metrics_snapshot(metrics: MetricsAggregator = Depends(get_metrics)):
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "metrics": metrics.get_snapshot().to_dict(),
        }


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("chronos.main:create_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
