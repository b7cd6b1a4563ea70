from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.pool import StaticPool
from core.config import settings


def build_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # In-memory SQLite must share a single connection across sessions
        return create_async_engine(url, echo=False, poolclass=StaticPool, future=True)

    # PostgreSQL driver for async operations is asyncpg
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_size=settings.DB_POOL_SIZE,        # Base connections
        max_overflow=settings.DB_MAX_OVERFLOW,  # Burst connections
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        connect_args={"command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS},
        future=True
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def insert_for(db: AsyncSession, table):
    """INSERT construct supporting ON CONFLICT for the dialect behind this session."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)
