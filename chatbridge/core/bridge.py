from __future__ import annotations
import os
from typing import Any
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from chatbridge.bus import EventBus, EventSink
from chatbridge.config import Settings
from chatbridge.core.connection import ConnectionManager
from chatbridge.core.dispatch import OutboundDispatcher
from chatbridge.core.ingest import MessageIngestPipeline
from chatbridge.core.reconnect import ReconnectPolicy
from chatbridge.domain.models import ConnectionStatus, Contact, Message, Session
from chatbridge.observability.logging import get_logger
from chatbridge.persistence.storage import SqlStorage, Storage
from chatbridge.transport.base import ProtocolSession, SessionFactory
from chatbridge.transport.credentials import CredentialStore, FileCredentialStore
from chatbridge.transport.loopback import LoopbackTransport

log = get_logger("bridge")

def _create_session_factory(settings: Settings) -> SessionFactory:
    """Create the protocol transport selected in settings."""
    if settings.transport == "loopback":
        log.info("transport_selected", transport="loopback")
        return LoopbackTransport()
    raise ValueError(f"unknown transport: {settings.transport}")

class Bridge:
    """Wires storage, event sink, transport and the three core components.

    Public operations: initialize, send_message, disconnect,
    get_connection_handle. Everything else is read-only.
    """
    def __init__(
        self,
        storage: Storage,
        sink: EventSink,
        credentials: CredentialStore,
        session_factory: SessionFactory,
        policy: ReconnectPolicy | None = None,
    ):
        self.storage = storage
        self.sink = sink
        self.pipeline = MessageIngestPipeline(storage, sink)
        self.manager = ConnectionManager(
            storage=storage,
            sink=sink,
            credentials=credentials,
            session_factory=session_factory,
            pipeline=self.pipeline,
            policy=policy,
        )
        self.dispatcher = OutboundDispatcher(storage, self.manager.get_connection_handle)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        bus: EventBus,
        transport: SessionFactory | None = None,
    ) -> "Bridge":
        os.makedirs(settings.data_dir, exist_ok=True)
        return cls(
            storage=SqlStorage(session_factory),
            sink=bus,
            credentials=FileCredentialStore(settings.auth_dir),
            session_factory=transport or _create_session_factory(settings),
            policy=ReconnectPolicy(delay_s=settings.reconnect_delay_s),
        )

    async def initialize(self) -> None:
        await self.manager.initialize()

    async def send_message(self, to: str, body: str) -> Message:
        return await self.dispatcher.send(to, body)

    async def disconnect(self) -> None:
        await self.manager.disconnect()

    def get_connection_handle(self) -> ProtocolSession | None:
        return self.manager.get_connection_handle()

    async def aclose(self) -> None:
        await self.manager.aclose()

    @property
    def status(self) -> ConnectionStatus:
        return self.manager.status

    async def get_session(self) -> Session:
        return await self.storage.get_session() or Session()

    async def describe_session(self) -> dict[str, Any]:
        session = await self.get_session()
        return {
            **session.model_dump(mode="json"),
            "state": self.status.model_dump(mode="json"),
        }

    async def list_contacts(self) -> list[Contact]:
        return await self.storage.list_contacts()

    async def list_messages(self, chat_id: str, limit: int = 50) -> list[Message]:
        return await self.storage.list_messages(chat_id, limit=limit)
