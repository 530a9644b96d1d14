from unittest.mock import AsyncMock, MagicMock

import pytest

from chronos.infra.mongo import CONNECTED, DISCONNECTED, MongoConnection, database_from_uri
from chronos.infra.monitor import ConnectionMonitor
from chronos.infra.redis_client import END, READY, RECONNECTING, WAIT, RedisConnection
from chronos.stats.health import MongoHealthProbe, RedisHealthProbe
from chronos.tests.fakes import FakeMongoConnection, FakeRedisConnection


def _mongo_client(ping_error=None, db_name="chronos"):
    client = MagicMock()
    client.admin.command = AsyncMock(side_effect=ping_error)
    client.close = AsyncMock()
    db = MagicMock()
    db.name = db_name
    db.list_collection_names = AsyncMock(return_value=["a", "b", "c"])
    collection = MagicMock()
    collection.estimated_document_count = AsyncMock(return_value=42)
    collection.insert_one = AsyncMock()
    db.__getitem__.return_value = collection
    client.get_default_database.return_value = db
    return client, db, collection


@pytest.mark.asyncio
async def test_mongo_connect_success_sets_connected():
    client, db, _ = _mongo_client()
    conn = MongoConnection("mongodb://x/chronos", client=client)

    assert conn.ready_state == DISCONNECTED
    assert conn.db is None
    assert await conn.connect() is True
    assert conn.ready_state == CONNECTED
    assert conn.database_name == "chronos"
    assert conn.db is db
    client.admin.command.assert_awaited_with("ping")


@pytest.mark.asyncio
async def test_mongo_connect_failure_stays_disconnected():
    client, _, _ = _mongo_client(ping_error=TimeoutError("no servers"))
    conn = MongoConnection("mongodb://x/chronos", database_name="chronos", client=client)

    assert await conn.connect() is False
    assert conn.ready_state == DISCONNECTED
    assert conn.db is None


@pytest.mark.asyncio
async def test_mongo_collection_helpers():
    client, db, collection = _mongo_client()
    conn = MongoConnection("mongodb://x/chronos", database_name="chronos", client=client)
    await conn.connect()

    assert await conn.list_collection_names(2) == ["a", "b"]
    assert await conn.estimated_count("a") == 42
    await conn.insert_one("request_logs", {"path": "/"})

    db.__getitem__.assert_any_call("request_logs")
    collection.insert_one.assert_awaited_once_with({"path": "/"})


@pytest.mark.asyncio
async def test_mongo_writes_fail_when_disconnected():
    conn = MongoConnection("mongodb://x/chronos")
    with pytest.raises(RuntimeError):
        await conn.insert_one("request_logs", {})
    assert await conn.list_collection_names(5) == []


@pytest.mark.asyncio
async def test_mongo_close_resets_state():
    client, _, _ = _mongo_client()
    conn = MongoConnection("mongodb://x/chronos", client=client)
    await conn.connect()
    await conn.close()

    assert conn.ready_state == DISCONNECTED
    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_connect_and_close():
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    conn = RedisConnection("redis://cache:6379", client=client)

    assert conn.status == WAIT
    assert await conn.connect() is True
    assert conn.status == READY
    assert await conn.ping() is True

    await conn.close()
    assert conn.status == END
    client.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_connect_failure_ends():
    client = MagicMock()
    client.ping = AsyncMock(side_effect=ConnectionError("refused"))
    conn = RedisConnection("redis://cache:6379", client=client)

    assert await conn.connect() is False
    assert conn.status == END


@pytest.mark.asyncio
async def test_redis_ping_without_client_raises():
    with pytest.raises(RuntimeError):
        await RedisConnection("redis://cache:6379").ping()


@pytest.mark.asyncio
async def test_mongo_down_at_boot_recovers_on_refresh():
    client, _, _ = _mongo_client()
    client.admin.command = AsyncMock(side_effect=[TimeoutError("no servers"), {"ok": 1}, {"ok": 1}])
    conn = MongoConnection("mongodb://x/chronos", client=client)

    assert await conn.connect() is False
    assert conn.ready_state == DISCONNECTED

    assert await conn.refresh() is True
    health = await MongoHealthProbe(conn).probe()

    assert health.connected is True
    assert health.state == "connected"
    assert health.ping_ms is not None
    assert client.admin.command.await_count == 3


@pytest.mark.asyncio
async def test_mongo_state_follows_heartbeats():
    client, _, _ = _mongo_client()
    conn = MongoConnection("mongodb://x/chronos", client=client)
    await conn.connect()

    conn.heartbeat_listener.failed(MagicMock(reply=ConnectionError("reset")))
    assert conn.ready_state == DISCONNECTED
    assert conn.db is None
    assert (await MongoHealthProbe(conn).probe()).connected is False

    conn.heartbeat_listener.succeeded(MagicMock())
    assert conn.ready_state == CONNECTED


@pytest.mark.asyncio
async def test_mongo_heartbeats_ignored_after_close():
    client, _, _ = _mongo_client()
    conn = MongoConnection("mongodb://x/chronos", client=client)
    await conn.connect()
    await conn.close()

    conn.heartbeat_listener.succeeded(MagicMock())
    assert conn.ready_state == DISCONNECTED
    assert await conn.refresh() is False


@pytest.mark.parametrize(
    "uri, configured, expected",
    [
        ("mongodb://localhost:27017/prod", "chronos", "prod"),
        ("mongodb://root:pw@db:27017/prod?authSource=admin", "chronos", "prod"),
        ("mongodb://a:1,b:2/reports", "chronos", "reports"),
        ("mongodb://localhost:27017", "chronos", "chronos"),
        ("mongodb://localhost:27017/?authSource=admin", "other", "other"),
        ("mongodb://localhost:27017", None, "chronos"),
    ],
)
def test_database_name_prefers_uri_path(uri, configured, expected):
    assert MongoConnection(uri, database_name=configured).database_name == expected


def test_database_from_uri_decodes_name():
    assert database_from_uri("mongodb://h/my%2Ddb") == "my-db"
    assert database_from_uri("mongodb://h/") is None


@pytest.mark.asyncio
async def test_redis_down_at_boot_recovers_on_refresh():
    client = MagicMock()
    client.ping = AsyncMock(side_effect=[ConnectionError("refused"), True, True])
    conn = RedisConnection("redis://cache:6379", client=client)

    assert await conn.connect() is False
    assert conn.status == END

    assert await conn.refresh() is True
    health = await RedisHealthProbe(conn).probe()

    assert health.connected is True
    assert health.state == READY
    assert health.ping_ms is not None


@pytest.mark.asyncio
async def test_redis_drop_after_startup_is_reported():
    client = MagicMock()
    client.ping = AsyncMock(side_effect=[True, ConnectionError("reset"), True])
    conn = RedisConnection("redis://cache:6379", client=client)
    await conn.connect()

    health = await RedisHealthProbe(conn).probe()
    assert health.connected is False
    assert health.state == RECONNECTING
    assert health.ping_ms is None

    # no I/O while not ready
    assert await RedisHealthProbe(conn).try_ping_ms() is None
    assert client.ping.await_count == 2

    assert await conn.refresh() is True
    assert conn.status == READY


@pytest.mark.asyncio
async def test_redis_refresh_after_close_is_noop():
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    conn = RedisConnection("redis://cache:6379", client=client)
    await conn.connect()
    await conn.close()

    assert await conn.refresh() is False
    assert conn.status == END
    assert client.ping.await_count == 1


@pytest.mark.asyncio
async def test_monitor_tick_refreshes_every_connection():
    mongo = FakeMongoConnection()
    redis = FakeRedisConnection()
    broken = MagicMock()
    broken.refresh = AsyncMock(side_effect=RuntimeError("boom"))

    await ConnectionMonitor([broken, mongo, redis]).tick()

    assert mongo.refresh_calls == 1
    assert redis.refresh_calls == 1


@pytest.mark.asyncio
async def test_monitor_start_and_stop():
    monitor = ConnectionMonitor([FakeMongoConnection()], interval_ms=60_000)

    await monitor.start()
    assert monitor.running is True
    await monitor.stop()
    assert monitor.running is False
