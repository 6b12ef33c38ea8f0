from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from site_inspector.platform.config import settings
from site_inspector.platform.db.base import Base


def _engine_options(database_url: str) -> dict:
    # SQLite (aiosqlite) runs on a single file; pool sizing only applies to server databases
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_size": 20,
        "max_overflow": 30,  # (burst capacity)
        "pool_timeout": 30,
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    **_engine_options(settings.DATABASE_URL),
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def create_tables() -> None:
    """Create any missing tables. Schema migrations are out of scope for this service."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
