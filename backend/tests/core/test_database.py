"""Unit tests for engine construction and pool instrumentation.

No connection is opened: engines are created but never used.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.core.metrics import db_pool_checked_out, db_pool_size
from app.database import engine_options, instrument_pool, update_pool_metrics

POSTGRES_URL = "postgresql+asyncpg://u:p@localhost:5432/freeboard"


class TestEngineOptions:
    def test_sqlite_memory_uses_static_pool(self):
        options = engine_options("sqlite+aiosqlite:///:memory:")
        assert options["poolclass"] is StaticPool
        assert "pool_size" not in options
        assert "max_overflow" not in options

    def test_server_pool_sized_from_settings(self):
        config = Settings()
        config.DB_POOL_SIZE = 3
        config.DB_MAX_OVERFLOW = 1
        options = engine_options(POSTGRES_URL, config)
        assert options["pool_size"] == 3
        assert options["max_overflow"] == 1
        assert options["pool_pre_ping"] is True

    def test_sqlite_options_build_an_engine(self):
        url = "sqlite+aiosqlite:///:memory:"
        engine = create_async_engine(url, **engine_options(url))
        assert isinstance(engine.sync_engine.pool, StaticPool)


class TestPoolMetrics:
    def test_static_pool_is_not_instrumented(self):
        url = "sqlite+aiosqlite:///:memory:"
        assert instrument_pool(create_async_engine(url, **engine_options(url))) is False

    def test_queue_pool_is_instrumented(self):
        engine = create_async_engine(POSTGRES_URL, **engine_options(POSTGRES_URL))
        assert instrument_pool(engine) is True

    def test_gauges_follow_pool(self):
        config = Settings()
        config.DB_POOL_SIZE = 4
        engine = create_async_engine(POSTGRES_URL, **engine_options(POSTGRES_URL, config))
        update_pool_metrics(engine.sync_engine.pool)
        assert db_pool_size._value.get() == 4
        assert db_pool_checked_out._value.get() == 0
