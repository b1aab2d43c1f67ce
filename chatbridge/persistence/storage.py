from __future__ import annotations
from typing import Any, Awaitable, Callable, Protocol, TypeVar
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from chatbridge.core.retry import retry_async
from chatbridge.domain.errors import PersistenceFailed
from chatbridge.domain.models import Contact, Message, Session
from chatbridge.observability import metrics
from chatbridge.persistence.repo import Repo

T = TypeVar("T")

class Storage(Protocol):
    """Narrow storage interface consumed by the bridge core."""

    async def update_session(self, **fields: Any) -> Session: ...

    async def get_session(self) -> Session | None: ...

    async def create_or_update_contact(self, contact: Contact) -> Contact: ...

    async def get_contact(self, chat_id: str) -> Contact | None: ...

    async def create_message(self, message: Message) -> Message: ...

    async def list_contacts(self) -> list[Contact]: ...

    async def list_messages(self, chat_id: str, limit: int = 50) -> list[Message]: ...


class SqlStorage:
    """Storage over SQLAlchemy async sessions. One transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _run(self, operation: str, fn: Callable[[Repo], Awaitable[T]], write: bool = True) -> T:
        async def _tx() -> T:
            async with self.session_factory() as s:
                out = await fn(Repo(s))
                if write:
                    await s.commit()
                return out
        _tx.__name__ = operation
        try:
            return await retry_async(_tx)
        except SQLAlchemyError as e:
            if write:
                metrics.persistence_failures.labels(operation=operation).inc()
            raise PersistenceFailed(operation) from e

    async def update_session(self, **fields: Any) -> Session:
        return await self._run("update_session", lambda r: r.update_session(fields))

    async def get_session(self) -> Session | None:
        return await self._run("get_session", lambda r: r.get_session(), write=False)

    async def create_or_update_contact(self, contact: Contact) -> Contact:
        return await self._run("upsert_contact", lambda r: r.upsert_contact(contact))

    async def get_contact(self, chat_id: str) -> Contact | None:
        return await self._run("get_contact", lambda r: r.get_contact(chat_id), write=False)

    async def create_message(self, message: Message) -> Message:
        return await self._run("create_message", lambda r: r.add_message(message))

    async def list_contacts(self) -> list[Contact]:
        return await self._run("list_contacts", lambda r: r.list_contacts(), write=False)

    async def list_messages(self, chat_id: str, limit: int = 50) -> list[Message]:
        return await self._run("list_messages", lambda r: r.list_messages(chat_id, limit=limit), write=False)
