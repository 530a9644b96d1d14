"""Best-effort persistence of request logs to MongoDB."""

from __future__ import annotations

import asyncio
import logging

from chronos.infra.mongo import MongoConnection
from chronos.request_logging.record import RequestLog

logger = logging.getLogger("chronos.request_logging")

COLLECTION = "request_logs"


class RequestLoggingService:
    """Writes one document per request without ever affecting the response.

    ``dispatch`` launches the write as a detached task and discards its outcome;
    failures are logged here and go no further. Pending writes are kept in
    ``_pending`` so they are not garbage-collected mid-flight and can be drained
    on shutdown.
    """

    def __init__(self, connection: MongoConnection, enabled: bool = True) -> None:
        self.connection = connection
        self.enabled = enabled
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def log(self, entry: RequestLog) -> None:
        try:
            await self.connection.insert_one(COLLECTION, entry.to_document())
        except Exception as exc:
            logger.warning(f"Request log write failed: {exc}")

    def dispatch(self, entry: RequestLog) -> None:
        if not self.enabled:
            return
        if self.connection.db is None:
            logger.debug(f"Request log skipped, MongoDB not connected: {entry.method} {entry.path}")
            return
        task = asyncio.create_task(self.log(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
