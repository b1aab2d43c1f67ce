from __future__ import annotations
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field

WSMsgType = str

class WSBase(BaseModel):
    type: WSMsgType
    id: str
    ts: datetime
    payload: dict[str, Any] = Field(default_factory=dict)

class WSRequest(WSBase):
    type: Literal[
        "req:hello",
        "req:session.get",
        "req:session.connect",
        "req:session.disconnect",
        "req:contacts.list",
        "req:chat.messages",
        "req:message.send",
    ]

class WSResponse(WSBase):
    type: str  # res:*
    ok: bool = True
    err: Optional[dict[str, Any]] = None

class WSEvent(WSBase):
    type: str  # evt:*
