import asyncio
import json

import pytest
from chatbridge.bus import EventBus
from chatbridge.domain.errors import NotConnected
from chatbridge.server.app import build_router
from chatbridge.server.ws import WSRouter, pump_events, ws_msg
from conftest import settle

def req(type_, payload=None):
    return {"type": type_, "id": "1", "ts": "2026-01-30T00:00:00Z", "payload": payload or {}}

@pytest.mark.asyncio
async def test_ws_router_unknown_method():
    router = WSRouter(handler_map={})
    res = await router.handle(req("req:contacts.list"))
    assert res["ok"] is False
    assert res["err"]["code"] == "no_such_method"

@pytest.mark.asyncio
async def test_ws_router_bad_request():
    router = WSRouter(handler_map={})
    res = await router.handle(req("req:agent.run"))
    assert res["type"] == "res:error"
    assert res["err"]["code"] == "bad_request"

@pytest.mark.asyncio
async def test_ws_router_ok():
    async def handler(payload): return {"x": 1}
    router = WSRouter(handler_map={"req:hello": handler})
    res = await router.handle(req("req:hello"))
    assert res["ok"] is True
    assert res["type"] == "res:hello"
    assert res["payload"]["x"] == 1

@pytest.mark.asyncio
async def test_ws_router_maps_bridge_errors():
    async def handler(payload): raise NotConnected()
    router = WSRouter(handler_map={"req:message.send": handler})
    res = await router.handle(req("req:message.send", {"to": "1", "body": "x"}))
    assert res["ok"] is False
    assert res["err"]["code"] == "not_connected"

@pytest.mark.asyncio
async def test_bridge_rpc_send_and_history(connected):
    router = build_router(connected)
    res = await router.handle(req("req:message.send", {"to": "1234567890", "body": "hi"}))
    assert res["ok"] is True
    assert res["payload"]["message"]["to"] == "1234567890@s.whatsapp.net"
    assert res["payload"]["message"]["is_from_me"] is True

    res = await router.handle(req("req:chat.messages", {"chat_id": "1234567890@s.whatsapp.net"}))
    assert [m["body"] for m in res["payload"]["messages"]] == ["hi"]

    res = await router.handle(req("req:session.get"))
    assert res["payload"]["session"]["is_connected"] is True
    assert res["payload"]["session"]["state"]["state"] == "open"

@pytest.mark.asyncio
async def test_bridge_rpc_missing_field(connected):
    router = build_router(connected)
    res = await router.handle(req("req:message.send", {"to": "1234567890"}))
    assert res["ok"] is False
    assert res["err"]["code"] == "bad_request"

@pytest.mark.asyncio
async def test_bridge_rpc_disconnect(connected, transport):
    router = build_router(connected)
    res = await router.handle(req("req:session.disconnect"))
    await settle(connected)
    assert res["payload"]["session"]["is_connected"] is False
    assert res["payload"]["session"]["state"]["state"] == "idle"
    assert transport.sessions[0].logged_out

@pytest.mark.asyncio
async def test_events_are_pushed_as_evt_envelopes():
    class FakeSocket:
        def __init__(self):
            self.sent = []
        async def send_text(self, text):
            self.sent.append(json.loads(text))

    bus = EventBus()
    ws = FakeSocket()
    task = asyncio.create_task(pump_events(ws, bus))
    await asyncio.sleep(0)
    await bus.emit("qr", {"qr": "2@abc"})
    for _ in range(10):
        if ws.sent:
            break
        await asyncio.sleep(0.01)
    task.cancel()

    msg = ws.sent[0]
    assert msg["type"] == "evt:qr"
    assert msg["id"] == "evt_1"
    assert msg["payload"] == {"seq": 1, "qr": "2@abc"}
    assert "ok" not in msg
    assert isinstance(msg["ts"], str)

def test_responses_carry_ok_and_err():
    msg = ws_msg("res:error", ok=False, err={"code": "bad_json", "message": "invalid json"})
    assert msg["ok"] is False
    assert msg["err"]["code"] == "bad_json"
    assert msg["payload"] == {}
