"""Domain models for the chat bridge."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class ConnectionState(str, Enum):
    """Lifecycle states of the connection manager (in-memory only)."""

    idle = "idle"
    connecting = "connecting"
    awaiting_qr = "awaiting_qr"
    open = "open"
    closing = "closing"
    closed = "closed"


class DisconnectReason(IntEnum):
    """Status codes the protocol transport reports when a connection closes."""

    logged_out = 401
    forbidden = 403
    timed_out = 408
    multidevice_mismatch = 411
    connection_closed = 428
    connection_replaced = 440
    bad_session = 500
    unavailable_service = 503
    restart_required = 515

    @classmethod
    def describe(cls, status_code: int | None) -> str:
        try:
            return cls(status_code).name
        except ValueError:
            return cls.connection_closed.name


class EventType(str, Enum):
    """Event names published to downstream observers."""

    qr = "qr"
    ready = "ready"
    disconnected = "disconnected"
    message = "message"


# ============================================================================
# Core Models
# ============================================================================


class Session(BaseModel):
    """Connectivity record of the linked account. One logical instance exists."""

    phone_number: Optional[str] = None
    is_connected: bool = False
    qr_code: Optional[str] = None
    last_connected_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)


class Contact(BaseModel):
    """Contact or group, keyed by chat identifier."""

    id: str = Field(description="Chat identifier, e.g. 5511999999999@s.whatsapp.net")
    name: Optional[str] = None
    pushname: Optional[str] = Field(default=None, description="Alias shown by the remote service")
    number: str
    is_group: bool = False


class Message(BaseModel):
    """Message in a chat. Append-only."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = Field(default=None, description="Storage-assigned, defines insertion order")
    chat_id: str
    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    body: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    is_from_me: bool = False


class ConnectionStatus(BaseModel):
    """Current state of the connection manager, with the closure reason when closed."""

    state: ConnectionState = ConnectionState.idle
    reason: Optional[str] = None


class Event(BaseModel):
    """Event published to the event bus."""

    seq: int = Field(description="Sequence number for ordering")
    type: EventType
    payload: dict[str, Any] = Field(default_factory=dict)
    ts: datetime = Field(default_factory=utcnow)


# ============================================================================
# Transport Models
# ============================================================================


class ConnectionUpdate(BaseModel):
    """Lifecycle signal reported by a protocol session."""

    connection: Optional[Literal["connecting", "open", "close"]] = None
    qr: Optional[str] = None
    status_code: Optional[int] = None
    reason: Optional[str] = None


class ChatMetadata(BaseModel):
    """Chat the session participates in, as returned by the transport."""

    id: str
    subject: Optional[str] = None


class InboundItem(BaseModel):
    """Normalized view of one raw inbound protocol message.

    Raw shape:
        {"key": {"remoteJid": ..., "fromMe": ..., "id": ...},
         "message": {...} | None, "messageTimestamp": 1700000000, "pushName": ...}
    """

    chat_id: str = ""
    from_me: bool = False
    message_id: Optional[str] = None
    content: Optional[dict[str, Any]] = None
    timestamp: Optional[int] = None
    push_name: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v: Any) -> Any:
        # transports may hand epoch seconds over as strings
        if isinstance(v, str):
            return int(v) if v.strip() else None
        return v

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "InboundItem":
        key = raw.get("key") or {}
        return cls(
            chat_id=key.get("remoteJid") or "",
            from_me=bool(key.get("fromMe")),
            message_id=key.get("id"),
            content=raw.get("message"),
            timestamp=raw.get("messageTimestamp"),
            push_name=raw.get("pushName"),
        )

    @property
    def received_at(self) -> datetime:
        if self.timestamp is None:
            return utcnow()
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
