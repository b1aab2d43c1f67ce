from __future__ import annotations
from datetime import datetime, timezone
from typing import Any
from sqlalchemy import select, desc
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from chatbridge.domain.models import Session, Contact, Message, utcnow
from chatbridge.persistence.schema import SESSION_ROW_ID, SessionRow, ContactRow, MessageRow

SESSION_FIELDS = frozenset({"phone_number", "is_connected", "qr_code", "last_connected_at"})

def _aware(dt: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; everything is stored as UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt

class Repo:
    def __init__(self, session: AsyncSession):
        self.s = session

    async def update_session(self, fields: dict[str, Any]) -> Session:
        unknown = set(fields) - SESSION_FIELDS
        if unknown:
            raise ValueError(f"unknown session fields: {sorted(unknown)}")
        row = await self.s.get(SessionRow, SESSION_ROW_ID)
        if row is None:
            row = SessionRow(id=SESSION_ROW_ID, is_connected=False)
            self.s.add(row)
        for k, v in fields.items():
            setattr(row, k, v)
        if row.is_connected:
            row.qr_code = None
        row.updated_at = utcnow()
        return self._session(row)

    async def get_session(self) -> Session | None:
        row = await self.s.get(SessionRow, SESSION_ROW_ID)
        return self._session(row) if row else None

    async def upsert_contact(self, c: Contact) -> Contact:
        values = dict(name=c.name, pushname=c.pushname, number=c.number, is_group=c.is_group)
        # single statement so concurrent writers of a new id both land as upserts
        stmt = sqlite_insert(ContactRow).values(id=c.id, **values).on_conflict_do_update(
            index_elements=[ContactRow.id], set_=values,
        )
        await self.s.execute(stmt)
        return c

    async def get_contact(self, chat_id: str) -> Contact | None:
        row = await self.s.get(ContactRow, chat_id)
        if not row:
            return None
        return Contact(id=row.id, name=row.name, pushname=row.pushname, number=row.number, is_group=row.is_group)

    async def list_contacts(self) -> list[Contact]:
        res = await self.s.execute(select(ContactRow).order_by(ContactRow.id))
        return [Contact(id=r.id, name=r.name, pushname=r.pushname, number=r.number, is_group=r.is_group)
                for r in res.scalars().all()]

    async def add_message(self, msg: Message) -> Message:
        row = MessageRow(
            chat_id=msg.chat_id, from_id=msg.from_id, to_id=msg.to_id,
            body=msg.body, timestamp=msg.timestamp, is_from_me=msg.is_from_me,
        )
        self.s.add(row)
        await self.s.flush()
        return msg.model_copy(update={"id": row.id})

    async def list_messages(self, chat_id: str, limit: int = 50) -> list[Message]:
        stmt = select(MessageRow).where(MessageRow.chat_id == chat_id).order_by(desc(MessageRow.id)).limit(limit)
        res = await self.s.execute(stmt)
        rows = list(res.scalars().all())
        # reverse to insertion order
        rows.reverse()
        return [Message(
            id=r.id, chat_id=r.chat_id, from_id=r.from_id, to_id=r.to_id,
            body=r.body, timestamp=_aware(r.timestamp), is_from_me=r.is_from_me,
        ) for r in rows]

    @staticmethod
    def _session(row: SessionRow) -> Session:
        return Session(
            phone_number=row.phone_number, is_connected=row.is_connected, qr_code=row.qr_code,
            last_connected_at=_aware(row.last_connected_at), updated_at=_aware(row.updated_at),
        )
