"""Live health probes for the document store and the cache.

Probes never raise: an unreachable dependency or a failed round-trip is
reported as ``ping_ms=None`` so the dashboard can render it as unavailable.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from chronos.infra.mongo import CONNECTED, MongoConnection
from chronos.infra.redis_client import READY, RedisConnection

logger = logging.getLogger("chronos.stats.health")

_MONGO_STATES = {
    0: "disconnected",
    1: "connected",
    2: "connecting",
    3: "disconnecting",
}


@dataclass(frozen=True)
class HealthDescriptor:
    connected: bool
    state: str
    ping_ms: Optional[float] = None


def describe_mongo_state(ready_state: object) -> str:
    state = _MONGO_STATES.get(ready_state) if isinstance(ready_state, int) else None
    return state or f"unknown({ready_state})"


class MongoHealthProbe:
    def __init__(self, connection: MongoConnection) -> None:
        self.connection = connection

    @property
    def database_name(self) -> Optional[str]:
        return getattr(self.connection, "database_name", None) or None

    def describe_state(self) -> HealthDescriptor:
        ready_state = getattr(self.connection, "ready_state", None)
        return HealthDescriptor(
            connected=ready_state == CONNECTED,
            state=describe_mongo_state(ready_state),
        )

    async def try_ping_ms(self) -> Optional[float]:
        if self.connection.ready_state != CONNECTED or self.connection.db is None:
            return None

        start = time.perf_counter()
        try:
            await self.connection.admin_ping()
        except Exception as exc:
            logger.debug(f"MongoDB ping failed: {exc}")
            return None
        return (time.perf_counter() - start) * 1000.0

    async def probe(self) -> HealthDescriptor:
        # state is read after the ping so a failed ping shows up in this render
        ping_ms = await self.try_ping_ms()
        state = self.describe_state()
        return HealthDescriptor(connected=state.connected, state=state.state, ping_ms=ping_ms)


class RedisHealthProbe:
    def __init__(self, connection: RedisConnection) -> None:
        self.connection = connection

    def describe_state(self) -> HealthDescriptor:
        status = getattr(self.connection, "status", None) or "unknown"
        return HealthDescriptor(connected=status == READY, state=str(status))

    async def try_ping_ms(self) -> Optional[float]:
        if not self.describe_state().connected:
            return None

        start = time.perf_counter()
        try:
            await self.connection.ping()
        except Exception as exc:
            logger.debug(f"Redis ping failed: {exc}")
            return None
        return (time.perf_counter() - start) * 1000.0

    async def probe(self) -> HealthDescriptor:
        ping_ms = await self.try_ping_ms()
        state = self.describe_state()
        return HealthDescriptor(connected=state.connected, state=state.state, ping_ms=ping_ms)
