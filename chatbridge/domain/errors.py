"""Errors raised by the bridge core."""
from __future__ import annotations


class BridgeError(Exception):
    """Base exception for bridge failures."""

    code = "bridge_error"


class SessionEstablishmentFailed(BridgeError):
    """The transport could not create or start a protocol session."""

    code = "session_establishment_failed"


class NotConnected(BridgeError):
    """No open protocol session exists."""

    code = "not_connected"

    def __init__(self, message: str = "chat session is not connected"):
        super().__init__(message)


class SendFailed(BridgeError):
    """The transport rejected an outbound message."""

    code = "send_failed"

    def __init__(self, chat_id: str, cause: BaseException):
        super().__init__(f"failed to send message to {chat_id}: {cause}")
        self.chat_id = chat_id
        self.cause = cause


class IngestItemFailed(BridgeError):
    """One inbound item could not be ingested. Never aborts its batch."""

    code = "ingest_item_failed"

    def __init__(self, chat_id: str):
        super().__init__(f"failed to ingest message from {chat_id or '<unknown>'}")
        self.chat_id = chat_id


class PersistenceFailed(BridgeError):
    """A storage operation failed."""

    code = "persistence_failed"

    def __init__(self, operation: str):
        super().__init__(f"storage operation failed: {operation}")
        self.operation = operation
