from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from medreq.core.config import settings

connect_args: dict = {}
if make_url(settings.database_url).get_driver_name() == "asyncpg":
    connect_args["server_settings"] = {"timezone": "utc"}

engine = create_async_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session
