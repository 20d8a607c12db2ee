"""
Database configuration and session management
Uses SQLAlchemy with async support
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy import event
from sqlalchemy.pool import NullPool
import logging

from .config import settings

logger = logging.getLogger(__name__)

def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create async engine with pooling parameters suited to the backend"""
    if url.startswith("sqlite"):
        # SQLite doesn't support connection pooling parameters
        sqlite_engine = create_async_engine(url, echo=echo, poolclass=NullPool)
        use_immediate_transactions(sqlite_engine)
        return sqlite_engine
    
    # PostgreSQL and other databases support pooling
    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True,  # Verify connections before use
    )

def use_immediate_transactions(async_engine: AsyncEngine) -> None:
    """
    Make SQLite take the write lock when a transaction begins

    pysqlite defers BEGIN until the first write, so two sessions can read the
    same stock row before either updates it. BEGIN IMMEDIATE serialises
    writers the way row locks do on PostgreSQL.
    """
    sync_engine = async_engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Session factory used by request handlers and the checkout saga"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

engine = create_engine_for(settings.database_url_async, echo=settings.DATABASE_ECHO)

AsyncSessionLocal = create_session_factory(engine)

async def init_db(bind: AsyncEngine = engine) -> None:
    """Initialize database tables"""
    from orderflow.models import Base
    
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

async def close_db(bind: AsyncEngine = engine) -> None:
    """Close database connections"""
    await bind.dispose()
    logger.info("Database connections closed")
