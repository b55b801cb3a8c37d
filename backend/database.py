"""
Database setup with SQLModel - async engine and session factory
"""
from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from config import settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine suited to the database backend"""
    # For SQLite, use StaticPool to share connection across threads
    if "sqlite" in database_url:
        return create_async_engine(
            database_url,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,  # Single connection for SQLite
        )
    # For PostgreSQL/MySQL - use proper connection pooling
    return create_async_engine(
        database_url,
        echo=echo,
        future=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 min
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,  # Manual flush for better control
    )


async_engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
async_session = build_sessionmaker(async_engine)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all SQLModel tables on the given engine"""
    from models import job, queue, setting  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db():
    """Initialize database tables"""
    await create_tables(async_engine)


async def close_db():
    """Close database connections on shutdown"""
    await async_engine.dispose()
