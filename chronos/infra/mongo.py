"""MongoDB connection wrapper with an explicit lifecycle state."""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import unquote, urlsplit

from pymongo import AsyncMongoClient, monitoring
from pymongo.asynchronous.database import AsyncDatabase

logger = logging.getLogger("chronos.mongo")

DISCONNECTED = 0
CONNECTED = 1
CONNECTING = 2
DISCONNECTING = 3

DEFAULT_DATABASE = "chronos"


def database_from_uri(uri: str) -> Optional[str]:
    """Database named in the connection string path, if any."""
    try:
        path = urlsplit(uri).path
    except ValueError:
        return None
    return unquote(path.lstrip("/")) or None


class HeartbeatStateListener(monitoring.ServerHeartbeatListener):
    """Keeps ``MongoConnection.ready_state`` in step with the driver's server monitor."""

    def __init__(self, connection: "MongoConnection") -> None:
        self.connection = connection

    def started(self, event) -> None:
        pass

    def succeeded(self, event) -> None:
        self.connection._on_heartbeat(True)

    def failed(self, event) -> None:
        self.connection._on_heartbeat(False, getattr(event, "reply", None))


class MongoConnection:
    """Owns the async client and tracks its ready state (0-3, like a driver ODM).

    The state follows server heartbeats once the client exists, so a server
    that comes up after boot, or goes away later, is reflected without a restart.
    """

    def __init__(
        self,
        uri: str,
        database_name: Optional[str] = None,
        server_selection_timeout_ms: int = 5000,
        client: Optional[AsyncMongoClient] = None,
    ) -> None:
        self._uri = uri
        self._timeout_ms = server_selection_timeout_ms
        self._client = client
        self._fallback_database = database_name or DEFAULT_DATABASE
        self._database_name = database_from_uri(uri)
        self._ready_state = DISCONNECTED
        self._closed = False
        self.heartbeat_listener = HeartbeatStateListener(self)
        if client is not None:
            self._resolve_database_name()

    @property
    def ready_state(self) -> int:
        return self._ready_state

    @property
    def database_name(self) -> Optional[str]:
        """Name of the database in use: the URI path when present, else the configured name."""
        return self._database_name or self._fallback_database

    @property
    def db(self) -> Optional[AsyncDatabase]:
        if self._ready_state != CONNECTED or self._client is None:
            return None
        return self._client.get_default_database(default=self._fallback_database)

    def _resolve_database_name(self) -> None:
        self._database_name = self._client.get_default_database(
            default=self._fallback_database
        ).name

    def _on_heartbeat(self, ok: bool, error: Any = None) -> None:
        if self._closed or self._ready_state in (CONNECTING, DISCONNECTING):
            return
        state = CONNECTED if ok else DISCONNECTED
        if state != self._ready_state:
            if ok:
                logger.info(f"MongoDB reachable again (db={self.database_name})")
            else:
                logger.warning(f"MongoDB heartbeat failed: {error}")
        self._ready_state = state

    async def connect(self) -> bool:
        """Open the client and verify it with an admin ping. Never raises."""
        self._closed = False
        self._ready_state = CONNECTING
        try:
            if self._client is None:
                self._client = AsyncMongoClient(
                    self._uri,
                    serverSelectionTimeoutMS=self._timeout_ms,
                    connectTimeoutMS=self._timeout_ms,
                    event_listeners=[self.heartbeat_listener],
                )
                self._resolve_database_name()
            await self._client.admin.command("ping")
        except Exception as exc:
            self._ready_state = DISCONNECTED
            logger.warning(f"MongoDB connection failed: {exc}")
            return False

        self._ready_state = CONNECTED
        logger.info(f"MongoDB connected (db={self.database_name})")
        return True

    async def refresh(self) -> bool:
        """Retry ``connect`` when not connected. Heartbeats track a live client."""
        if self._closed:
            return False
        if self._ready_state == CONNECTED:
            return True
        return await self.connect()

    async def close(self) -> None:
        self._closed = True
        if self._client is None:
            self._ready_state = DISCONNECTED
            return
        self._ready_state = DISCONNECTING
        try:
            await self._client.close()
        except Exception as exc:
            logger.debug(f"MongoDB close failed: {exc}")
        finally:
            self._ready_state = DISCONNECTED

    async def admin_ping(self) -> None:
        if self._client is None:
            raise RuntimeError("MongoDB client is not initialised")
        await self._client.admin.command("ping")

    async def list_collection_names(self, limit: int) -> list[str]:
        db = self.db
        if db is None:
            return []
        names = await db.list_collection_names()
        return list(names)[: max(0, limit)]

    async def estimated_count(self, collection: str) -> int:
        db = self.db
        if db is None:
            raise RuntimeError("MongoDB is not connected")
        return int(await db[collection].estimated_document_count())

    async def insert_one(self, collection: str, document: dict[str, Any]) -> None:
        db = self.db
        if db is None:
            raise RuntimeError("MongoDB is not connected")
        await db[collection].insert_one(document)
