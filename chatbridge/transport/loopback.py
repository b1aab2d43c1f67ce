from __future__ import annotations
import secrets
import time
from typing import Any
from chatbridge.domain.chat_ids import USER_DOMAIN
from chatbridge.domain.models import ChatMetadata, ConnectionUpdate, DisconnectReason
from chatbridge.transport.base import ProtocolSession
from chatbridge.transport.credentials import CredentialStore

class LoopbackSession(ProtocolSession):
    """In-process session with no network behind it.

    Mirrors the behaviour of a real multi-device session closely enough to
    drive the bridge locally: without stored credentials it issues a QR
    challenge and waits for `pair()`; with credentials it opens straight away.
    Inbound traffic and drops are injected with `receive()` and `drop()`.
    """
    def __init__(self, credentials: CredentialStore, chats: dict[str, ChatMetadata] | None = None):
        super().__init__(credentials)
        self.chats = dict(chats or {})
        self.sent: list[tuple[str, str]] = []
        self.started = False
        self.closed = False
        self.logged_out = False
        self.fail_sends: Exception | None = None
        self.fail_logout: Exception | None = None
        self.fail_fetch: Exception | None = None

    async def start(self) -> None:
        self.started = True
        self._emit_connection_update(ConnectionUpdate(connection="connecting"))
        creds = self.credentials.load()
        if creds and creds.get("me"):
            self._open(creds["me"])
        else:
            self._emit_connection_update(ConnectionUpdate(qr=f"2@{secrets.token_urlsafe(24)}"))

    def pair(self, phone: str, device: int = 1) -> None:
        """Complete the QR challenge as if scanned from a phone."""
        me = f"{phone}:{device}@{USER_DOMAIN}"
        self._save_credentials({"me": me, "paired_at": int(time.time())})
        self._open(me)

    def _open(self, me: str) -> None:
        self.user_id = me
        self._emit_connection_update(ConnectionUpdate(connection="open"))

    def receive(self, chat_id: str, text: str, push_name: str | None = None, ts: int | None = None) -> dict[str, Any]:
        raw = {
            "key": {"remoteJid": chat_id, "fromMe": False, "id": secrets.token_hex(8).upper()},
            "message": {"conversation": text},
            "messageTimestamp": ts if ts is not None else int(time.time()),
            "pushName": push_name,
        }
        self._emit_messages([raw])
        return raw

    def deliver(self, messages: list[dict[str, Any]]) -> None:
        self._emit_messages(messages)

    def drop(self, status_code: int = DisconnectReason.connection_closed) -> None:
        self._emit_connection_update(ConnectionUpdate(connection="close", status_code=status_code))

    async def send_message(self, chat_id: str, body: str) -> dict[str, Any] | None:
        if self.closed:
            raise ConnectionError("connection closed")
        if self.fail_sends is not None:
            raise self.fail_sends
        self.sent.append((chat_id, body))
        return {"key": {"remoteJid": chat_id, "fromMe": True, "id": secrets.token_hex(8).upper()}}

    async def group_fetch_all_participating(self) -> dict[str, ChatMetadata]:
        if self.fail_fetch is not None:
            raise self.fail_fetch
        return dict(self.chats)

    async def logout(self) -> None:
        if self.fail_logout is not None:
            raise self.fail_logout
        self.logged_out = True
        self.credentials.clear()
        self._emit_connection_update(ConnectionUpdate(connection="close", status_code=DisconnectReason.logged_out))

    async def close(self) -> None:
        self.closed = True

class LoopbackTransport:
    """Session factory for loopback sessions; remembers every session it made."""

    def __init__(self, chats: dict[str, ChatMetadata] | None = None):
        self.chats = dict(chats or {})
        self.sessions: list[LoopbackSession] = []
        self.fail_next_start: Exception | None = None

    async def __call__(self, credentials: CredentialStore) -> LoopbackSession:
        if self.fail_next_start is not None:
            err, self.fail_next_start = self.fail_next_start, None
            raise err
        session = LoopbackSession(credentials, chats=self.chats)
        self.sessions.append(session)
        return session

    @property
    def latest(self) -> LoopbackSession | None:
        return self.sessions[-1] if self.sessions else None
