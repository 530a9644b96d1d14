"""Shared test fixtures for Chronos backend tests."""

from __future__ import annotations

import pytest

from chronos.config import Settings
from chronos.tests.fakes import FakeClock, FakeMongoConnection, FakeRedisConnection


@pytest.fixture
def make_settings(tmp_path):
    """Settings isolated from the developer's environment and .env file."""

    def _make(**overrides) -> Settings:
        values = {
            "APP_ENV": "development",
            "STATS_COVERAGE_SUMMARY_PATH": str(tmp_path / "missing-coverage.json"),
            "STATS_COVERAGE_REPORT_DIR": str(tmp_path / "missing-htmlcov"),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def fake_mongo() -> FakeMongoConnection:
    return FakeMongoConnection(collections={"users": 1200, "request_logs": 34})


@pytest.fixture
def fake_redis() -> FakeRedisConnection:
    return FakeRedisConnection()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
