from __future__ import annotations
from typing import Callable
from chatbridge.domain.chat_ids import is_group_chat, normalize_chat_id, number_of
from chatbridge.domain.errors import NotConnected, SendFailed
from chatbridge.domain.models import Contact, Message, utcnow
from chatbridge.observability import metrics
from chatbridge.observability.logging import get_logger
from chatbridge.persistence.storage import Storage
from chatbridge.transport.base import ProtocolSession

log = get_logger("dispatch")

class OutboundDispatcher:
    """Sends user-originated messages and records them once the transport accepts them."""

    def __init__(self, storage: Storage, handle: Callable[[], ProtocolSession | None]):
        self.storage = storage
        self._handle = handle

    async def send(self, to: str, body: str) -> Message:
        session = self._handle()
        if session is None:
            raise NotConnected()
        record = await self.storage.get_session()
        if record is None or not record.is_connected:
            raise NotConnected()

        chat_id = normalize_chat_id(to)
        try:
            await session.send_message(chat_id, body)
        except Exception as e:
            metrics.outbound_messages.labels(status="failed").inc()
            log.warning("send_failed", chat_id=chat_id, err=str(e))
            raise SendFailed(chat_id, e) from e
        metrics.outbound_messages.labels(status="sent").inc()

        # the remote send already happened; storage trouble from here on is logged only
        try:
            if await self.storage.get_contact(chat_id) is None:
                await self.storage.create_or_update_contact(Contact(
                    id=chat_id, name=None, pushname=None,
                    number=number_of(chat_id), is_group=is_group_chat(chat_id),
                ))
        except Exception as e:
            log.warning("outbound_contact_persist_failed", chat_id=chat_id, err=str(e))

        msg = Message(
            chat_id=chat_id,
            from_id=session.user_id or chat_id,
            to_id=chat_id,
            body=body,
            timestamp=utcnow(),
            is_from_me=True,
        )
        try:
            return await self.storage.create_message(msg)
        except Exception as e:
            log.warning("outbound_message_persist_failed", chat_id=chat_id, err=str(e))
            return msg
