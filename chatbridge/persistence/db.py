from __future__ import annotations
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from chatbridge.config import Settings

def make_engine(settings: Settings) -> AsyncEngine:
    return make_engine_for_path(settings.sqlite_path)

def make_engine_for_path(sqlite_path: str) -> AsyncEngine:
    url = f"sqlite+aiosqlite:///{sqlite_path}"
    return create_async_engine(url, echo=False)

def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)
