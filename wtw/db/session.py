import wtw.db.base  # noqa: F401

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from wtw.core.config import settings
from wtw.db.base_class import Base  # noqa: F401


def build_engine(database_url: str, *, env: str = "local") -> AsyncEngine:
    engine_kwargs: dict[str, object] = {
        "echo": env == "local",
        "pool_pre_ping": True,
    }
    if env == "test":
        engine_kwargs["poolclass"] = NullPool

    engine = create_async_engine(database_url, **engine_kwargs)

    if engine.dialect.name == "sqlite":
        # SQLite ignores FOREIGN KEY ... ON DELETE CASCADE unless asked per connection.
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        expire_on_commit=False,
        class_=AsyncSession,
    )


engine = build_engine(settings.database_url, env=settings.env)

AsyncSessionLocal = build_sessionmaker(engine)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
