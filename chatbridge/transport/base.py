from __future__ import annotations
import abc
from typing import Any, Awaitable, Callable, Protocol
from chatbridge.domain.models import ChatMetadata, ConnectionUpdate
from chatbridge.transport.credentials import CredentialStore

class SessionListener(Protocol):
    """Receives events from one protocol session. Callbacks must not block."""

    def on_connection_update(self, session: "ProtocolSession", update: ConnectionUpdate) -> None: ...

    def on_messages_upserted(self, session: "ProtocolSession", messages: list[dict[str, Any]]) -> None: ...

class ProtocolSession(abc.ABC):
    """Handle to one live connection to the remote chat service.

    A new instance is created for every connection attempt. Implementations
    report lifecycle and inbound traffic through the `_emit_*` helpers and
    persist refreshed auth material through `_save_credentials`.
    """
    def __init__(self, credentials: CredentialStore):
        self.credentials = credentials
        self.user_id: str | None = None
        self._listeners: list[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit_connection_update(self, update: ConnectionUpdate) -> None:
        for listener in list(self._listeners):
            listener.on_connection_update(self, update)

    def _emit_messages(self, messages: list[dict[str, Any]]) -> None:
        for listener in list(self._listeners):
            listener.on_messages_upserted(self, messages)

    def _save_credentials(self, creds: dict[str, Any]) -> None:
        self.credentials.save(creds)

    @abc.abstractmethod
    async def start(self) -> None:
        """Open the connection using whatever credentials are stored."""

    @abc.abstractmethod
    async def send_message(self, chat_id: str, body: str) -> dict[str, Any] | None:
        ...

    @abc.abstractmethod
    async def group_fetch_all_participating(self) -> dict[str, ChatMetadata]:
        ...

    @abc.abstractmethod
    async def logout(self) -> None:
        """Deauthorize the linked device. Stored credentials become invalid."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Drop the connection without deauthorizing."""

SessionFactory = Callable[[CredentialStore], Awaitable[ProtocolSession]]
