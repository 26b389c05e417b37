from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import QueuePool, StaticPool

from app.config import Settings, settings
from app.core.metrics import db_pool_checked_in, db_pool_checked_out, db_pool_overflow, db_pool_size


def engine_options(url: str, config: Settings = settings) -> dict:
    """Keyword arguments for ``create_async_engine`` on ``url``.

    SQLite (local runs, ``sqlite+aiosqlite:///:memory:``) shares one connection
    through ``StaticPool``, which takes no sizing arguments. Server databases
    get a queue pool sized from the settings.
    """
    if make_url(url).get_backend_name() == "sqlite":
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_timeout": config.DB_POOL_TIMEOUT,
        "pool_recycle": config.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def update_pool_metrics(pool: QueuePool) -> None:
    """Snapshot current pool state into Prometheus gauges."""
    db_pool_size.set(pool.size())
    db_pool_checked_in.set(pool.checkedin())
    db_pool_checked_out.set(pool.checkedout())
    db_pool_overflow.set(pool.overflow())


def instrument_pool(async_engine: AsyncEngine) -> bool:
    """Keep the pool gauges current on checkout/checkin. Only queue pools are sized."""
    pool = async_engine.sync_engine.pool
    if not isinstance(pool, QueuePool):
        return False

    @event.listens_for(async_engine.sync_engine, "checkout")
    def _on_checkout(dbapi_conn, connection_record, connection_proxy):
        update_pool_metrics(pool)

    @event.listens_for(async_engine.sync_engine, "checkin")
    def _on_checkin(dbapi_conn, connection_record):
        update_pool_metrics(pool)

    return True


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))
instrument_pool(engine)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session
