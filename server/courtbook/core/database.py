"""Database handle, async session management and dialect helpers."""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

# Create declarative base for models
Base = declarative_base()


class Database:
    """
    Owns the async engine and session factory for one data store.

    Opened once at process start (see ``main.lifespan``), shared by request
    handlers and background workers, and disposed on shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        in_memory = url.startswith("sqlite") and ":memory:" in url
        kwargs = {}
        if in_memory:
            kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        elif not url.startswith("sqlite"):
            kwargs = {"pool_pre_ping": True}

        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "Database":
        """Wrap an existing engine (used by tests)."""
        db = cls.__new__(cls)
        db.url = str(engine.url)
        db.engine = engine
        db.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        return db

    async def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Close database connections."""
        await self.engine.dispose()

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that yields database sessions.

    Yields:
        AsyncSession: Session bound to the application's database handle
    """
    database: Database = request.app.state.database
    async for session in database.session():
        yield session


def dialect_insert(session: AsyncSession, table):
    """
    Return an INSERT construct that supports ``on_conflict_do_update``.

    Only PostgreSQL and SQLite are supported stores.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Unsupported database dialect for upserts: {dialect}")
