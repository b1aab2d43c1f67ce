from __future__ import annotations
from typing import Any, Callable, Iterable, Optional
from chatbridge.bus import EventSink
from chatbridge.domain.chat_ids import is_group_chat, number_of
from chatbridge.domain.errors import IngestItemFailed
from chatbridge.domain.models import Contact, EventType, InboundItem, Message
from chatbridge.observability import metrics
from chatbridge.observability.logging import get_logger
from chatbridge.persistence.storage import Storage
from chatbridge.transport.base import ProtocolSession

log = get_logger("ingest")

BodyRule = Callable[[dict[str, Any]], Optional[str]]

def _plain_text(content: dict[str, Any]) -> str | None:
    text = content.get("conversation")
    return text if isinstance(text, str) else None

def _extended_text(content: dict[str, Any]) -> str | None:
    ext = content.get("extendedTextMessage")
    text = ext.get("text") if isinstance(ext, dict) else None
    return text if isinstance(text, str) else None

# first populated field wins
BODY_RULES: tuple[BodyRule, ...] = (_plain_text, _extended_text)

def extract_body(content: dict[str, Any], rules: Iterable[BodyRule] = BODY_RULES) -> str:
    for rule in rules:
        text = rule(content)
        if text:
            return text
    return ""

def _skippable(raw: Any) -> bool:
    # no content, or echoed back from this account
    if not isinstance(raw, dict) or not raw.get("message"):
        return True
    key = raw.get("key")
    return isinstance(key, dict) and bool(key.get("fromMe"))

class MessageIngestPipeline:
    """Turns raw inbound protocol messages into stored contacts and messages.

    Every item is handled on its own: a failure is logged and the rest of
    the batch still goes through.
    """
    def __init__(self, storage: Storage, sink: EventSink):
        self.storage = storage
        self.sink = sink

    async def ingest(self, raw_items: list[dict[str, Any]], own_id: str | None = None) -> int:
        ingested = 0
        for raw in raw_items:
            try:
                if await self._ingest_one(raw, own_id):
                    ingested += 1
            except IngestItemFailed as e:
                metrics.ingest_failures.inc()
                log.warning("ingest_item_failed", chat_id=e.chat_id, err=str(e.__cause__))
        return ingested

    async def _ingest_one(self, raw: dict[str, Any], own_id: str | None) -> bool:
        if _skippable(raw):
            return False
        chat_id = ""
        try:
            item = InboundItem.from_raw(raw)
            chat_id = item.chat_id
            body = extract_body(item.content)
            await self.storage.create_or_update_contact(Contact(
                id=chat_id,
                name=item.push_name,
                pushname=item.push_name,
                number=number_of(chat_id),
                is_group=is_group_chat(chat_id),
            ))
            await self.storage.create_message(Message(
                chat_id=chat_id,
                from_id=chat_id,
                to_id=own_id or "",
                body=body,
                timestamp=item.received_at,
                is_from_me=False,
            ))
            await self.sink.emit(EventType.message.value, {"chatId": chat_id, "from": chat_id, "body": body})
        except Exception as e:
            raise IngestItemFailed(chat_id) from e

        metrics.inbound_messages.inc()
        return True

    async def sync_contacts(self, session: ProtocolSession) -> int:
        """Upsert every chat the session participates in. Returns how many were stored."""
        try:
            chats = await session.group_fetch_all_participating()
        except Exception as e:
            log.warning("contact_sync_fetch_failed", err=str(e))
            return 0

        stored = 0
        for chat_id, chat in chats.items():
            try:
                await self.storage.create_or_update_contact(Contact(
                    id=chat_id,
                    name=chat.subject,
                    pushname=chat.subject,
                    number=number_of(chat_id),
                    is_group=is_group_chat(chat_id),
                ))
                stored += 1
            except Exception as e:
                log.warning("contact_sync_item_failed", chat_id=chat_id, err=str(e))
        log.info("contacts_synced", total=len(chats), stored=stored, failed=len(chats) - stored)
        return stored
