"""Redis connection wrapper with a reported status string."""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis

logger = logging.getLogger("chronos.redis")

WAIT = "wait"
CONNECTING = "connecting"
READY = "ready"
RECONNECTING = "reconnecting"
END = "end"


class RedisConnection:
    """Holds the asyncio client; ``status`` is ``ready`` only after a successful ping.

    Every ping updates ``status``: a failure on a ready connection moves it to
    ``reconnecting`` and ``refresh`` brings it back once the server answers.
    """

    def __init__(
        self,
        url: str,
        connect_timeout_ms: int = 5000,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self._url = url
        self._timeout_s = connect_timeout_ms / 1000.0
        self._client = client
        self._status = WAIT
        self._closed = False

    @property
    def status(self) -> str:
        return self._status

    @property
    def client(self) -> Optional[aioredis.Redis]:
        return self._client

    async def connect(self) -> bool:
        """Create the client and ping it. Never raises."""
        self._closed = False
        self._status = CONNECTING
        try:
            if self._client is None:
                self._client = aioredis.Redis.from_url(
                    self._url,
                    socket_connect_timeout=self._timeout_s,
                    socket_timeout=self._timeout_s,
                    decode_responses=True,
                )
            await self._client.ping()
        except Exception as exc:
            self._status = END
            logger.warning(f"Redis connection failed: {exc}")
            return False

        self._status = READY
        logger.info(f"Redis connected: {self._url.split('@')[-1]}")
        return True

    async def refresh(self) -> bool:
        """Ping a ready client, or reconnect one that is not. Never raises."""
        if self._closed:
            return False
        if self._status != READY:
            return await self.connect()
        try:
            await self.ping()
        except Exception:
            return False
        return True

    async def close(self) -> None:
        self._closed = True
        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as exc:
                logger.debug(f"Redis close failed: {exc}")
        self._status = END

    async def ping(self) -> object:
        if self._client is None:
            raise RuntimeError("Redis client is not initialised")
        try:
            reply = await self._client.ping()
        except Exception as exc:
            if self._status == READY:
                self._status = RECONNECTING
                logger.warning(f"Redis ping failed, marking as reconnecting: {exc}")
            raise
        if self._status == RECONNECTING:
            logger.info("Redis reachable again")
            self._status = READY
        return reply
