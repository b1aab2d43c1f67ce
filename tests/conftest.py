"""Shared fakes for bridge tests."""
from __future__ import annotations

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from chatbridge.core.bridge import Bridge
from chatbridge.core.reconnect import ReconnectPolicy
from chatbridge.domain.models import ChatMetadata, Contact, Message, Session
from chatbridge.transport.credentials import MemoryCredentialStore
from chatbridge.transport.loopback import LoopbackTransport

RECONNECT_DELAY = 0.05


class FakeStorage:
    """In-memory Storage with failure injection. Appends to a shared timeline."""

    def __init__(self, timeline: list[tuple[str, Any]]):
        self.timeline = timeline
        self.session: Session | None = None
        self.contacts: dict[str, Contact] = {}
        self.messages: list[Message] = []
        self.contact_writes = 0
        self.fail_session_updates = False
        self.fail_messages_for: set[str] = set()
        self.fail_contacts_for: set[str] = set()
        self._next_id = 1

    async def update_session(self, **fields: Any) -> Session:
        if self.fail_session_updates:
            raise RuntimeError("session table unavailable")
        current = self.session or Session()
        self.session = current.model_copy(update=fields)
        self.timeline.append(("session", dict(fields)))
        return self.session

    async def get_session(self) -> Session | None:
        return self.session

    async def create_or_update_contact(self, contact: Contact) -> Contact:
        if contact.id in self.fail_contacts_for:
            raise RuntimeError(f"cannot store contact {contact.id}")
        self.contacts[contact.id] = contact
        self.contact_writes += 1
        self.timeline.append(("contact", contact.id))
        return contact

    async def get_contact(self, chat_id: str) -> Contact | None:
        return self.contacts.get(chat_id)

    async def create_message(self, message: Message) -> Message:
        if message.chat_id in self.fail_messages_for:
            raise RuntimeError(f"cannot store message for {message.chat_id}")
        stored = message.model_copy(update={"id": self._next_id})
        self._next_id += 1
        self.messages.append(stored)
        self.timeline.append(("message", stored.chat_id))
        return stored

    async def list_contacts(self) -> list[Contact]:
        return sorted(self.contacts.values(), key=lambda c: c.id)

    async def list_messages(self, chat_id: str, limit: int = 50) -> list[Message]:
        return [m for m in self.messages if m.chat_id == chat_id][-limit:]


class RecordingSink:
    def __init__(self, timeline: list[tuple[str, Any]]):
        self.timeline = timeline
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, payload))
        self.timeline.append(("emit", event_name))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class CountingPolicy(ReconnectPolicy):
    def __init__(self, delay_s: float = RECONNECT_DELAY):
        super().__init__(delay_s=delay_s)
        self.scheduled = 0

    def schedule(self, callback):
        self.scheduled += 1
        return super().schedule(callback)


async def settle(bridge: Bridge, wait: float = 0.0) -> None:
    """Let timers fire, then apply every queued transport event."""
    if wait:
        await asyncio.sleep(wait)
    await bridge.manager.drain()


@pytest.fixture
def timeline() -> list[tuple[str, Any]]:
    return []


@pytest.fixture
def storage(timeline) -> FakeStorage:
    return FakeStorage(timeline)


@pytest.fixture
def sink(timeline) -> RecordingSink:
    return RecordingSink(timeline)


@pytest.fixture
def credentials() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def transport() -> LoopbackTransport:
    return LoopbackTransport(chats={
        "120363000000000001@g.us": ChatMetadata(id="120363000000000001@g.us", subject="Family"),
        "120363000000000002@g.us": ChatMetadata(id="120363000000000002@g.us", subject="Work"),
    })


@pytest.fixture
def policy() -> CountingPolicy:
    return CountingPolicy()


@pytest_asyncio.fixture
async def bridge(storage, sink, credentials, transport, policy):
    b = Bridge(storage=storage, sink=sink, credentials=credentials, session_factory=transport, policy=policy)
    yield b
    await b.aclose()


@pytest_asyncio.fixture
async def connected(bridge, transport):
    """Bridge with an open, paired session."""
    await bridge.initialize()
    await settle(bridge)
    transport.latest.pair("5511999990000")
    await settle(bridge)
    return bridge
