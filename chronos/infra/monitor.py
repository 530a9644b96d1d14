"""Background reconnect loop for the backing stores."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

logger = logging.getLogger("chronos.monitor")


class Refreshable(Protocol):
    async def refresh(self) -> bool: ...


class ConnectionMonitor:
    """Periodically refreshes MongoDB and Redis connections.

    Runs as a background task inside the FastAPI event loop. On each tick
    every connection gets ``refresh()``: a store that was down at boot is
    reconnected, and a Redis server that stopped answering is marked as such.
    """

    def __init__(self, connections: Sequence[Refreshable], interval_ms: int = 10_000) -> None:
        self.connections = list(connections)
        self.interval = max(interval_ms, 100) / 1000.0
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Connection monitor started (interval={self.interval}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Connection monitor stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                if not self._running:
                    break
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    async def tick(self) -> None:
        """Refresh every connection once; one failing store does not skip the rest."""
        for connection in self.connections:
            try:
                await connection.refresh()
            except Exception as e:
                logger.warning(f"Refresh failed for {type(connection).__name__}: {e}")
