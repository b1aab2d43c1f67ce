from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, String, DateTime, Text, Integer, ForeignKey
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

class Base(DeclarativeBase):
    pass

SESSION_ROW_ID = 1

class SessionRow(Base):
    __tablename__ = "session"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SESSION_ROW_ID)
    phone_number: Mapped[str | None] = mapped_column(String, nullable=True)
    is_connected: Mapped[bool] = mapped_column(Boolean, default=False)
    qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_connected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

class ContactRow(Base):
    __tablename__ = "contacts"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    pushname: Mapped[str | None] = mapped_column(String, nullable=True)
    number: Mapped[str] = mapped_column(String, index=True)
    is_group: Mapped[bool] = mapped_column(Boolean, default=False)

class MessageRow(Base):
    __tablename__ = "messages"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[str] = mapped_column(String, ForeignKey("contacts.id"), index=True)
    from_id: Mapped[str] = mapped_column(String)
    to_id: Mapped[str] = mapped_column(String)
    body: Mapped[str] = mapped_column(Text, default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    is_from_me: Mapped[bool] = mapped_column(Boolean, default=False)
