"""Async engines for the write-primary and the read-replica."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from userhub.config import DatabaseConfig
from userhub.errors import StorageError
from userhub.logging import get_logger

# Register table metadata before create_all.
from userhub.db import models  # noqa: F401

log = get_logger("userhub.db")


class DatabaseEngines:
    """Owns one engine and session factory per backing store."""

    def __init__(self, write_engine: AsyncEngine, read_engine: AsyncEngine) -> None:
        self.write_engine = write_engine
        self.read_engine = read_engine
        self._write_session = async_sessionmaker(write_engine, class_=AsyncSession, expire_on_commit=False)
        self._read_session = async_sessionmaker(read_engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> DatabaseEngines:
        write_engine = create_async_engine(config.write_url, echo=config.echo)
        if config.read_url == config.write_url:
            read_engine = write_engine
        else:
            read_engine = create_async_engine(config.read_url, echo=config.echo)
        return cls(write_engine, read_engine)

    async def connect(self) -> None:
        """Verify both stores answer; failure here is fatal to startup."""
        for label, engine in (("write", self.write_engine), ("read", self.read_engine)):
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except (SQLAlchemyError, OSError) as exc:
                raise StorageError(f"cannot connect to {label} store: {exc}") from exc
            log.info("store_connected", store=label, url=engine.url.render_as_string(hide_password=True))

    async def init_schema(self) -> None:
        """Create the ``users`` table on the write store if missing."""
        try:
            async with self.write_engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StorageError(f"cannot create schema: {exc}") from exc
        log.info("schema_ready", table="users")

    @asynccontextmanager
    async def write_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._write_session() as session:
            yield session

    @asynccontextmanager
    async def read_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._read_session() as session:
            yield session

    async def dispose(self) -> None:
        await self.write_engine.dispose()
        if self.read_engine is not self.write_engine:
            await self.read_engine.dispose()
