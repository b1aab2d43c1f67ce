from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect

from chatbridge.bus import EventBus
from chatbridge.domain.errors import BridgeError
from chatbridge.protocol.ws_models import WSEvent, WSRequest, WSResponse
from chatbridge.observability.logging import get_logger
from chatbridge.observability import metrics

log = get_logger("ws")


def ws_msg(
    type_: str,
    id_: str | None = None,
    payload: dict[str, Any] | None = None,
    ok: bool = True,
    err: dict[str, Any] | None = None,
    ts: datetime | None = None,
) -> dict[str, Any]:
    base: dict[str, Any] = {
        "type": type_,
        "id": id_ or uuid.uuid4().hex,
        "ts": ts or datetime.now(timezone.utc),
        "payload": payload or {},
    }
    if type_.startswith("res:"):
        return WSResponse(**base, ok=ok, err=err).model_dump(mode="json")
    return WSEvent(**base).model_dump(mode="json")


class WSRouter:
    def __init__(self, handler_map: dict[str, Callable[..., Awaitable[dict[str, Any]]]]):
        self.handler_map = handler_map

    async def handle(self, req: dict[str, Any]) -> dict[str, Any]:
        try:
            parsed = WSRequest.model_validate(req)
        except Exception as e:
            return ws_msg(
                "res:error",
                id_=req.get("id") or uuid.uuid4().hex,
                ok=False,
                err={"code": "bad_request", "message": str(e)},
            )

        res_type = f"res:{parsed.type.split(':', 1)[1]}"
        handler = self.handler_map.get(parsed.type)
        if not handler:
            return ws_msg(res_type, id_=parsed.id, ok=False, err={"code": "no_such_method", "message": parsed.type})

        metrics.rpc_requests.labels(method=parsed.type).inc()
        try:
            out = await handler(parsed.payload)
            return ws_msg(res_type, id_=parsed.id, payload=out, ok=True)
        except BridgeError as e:
            metrics.rpc_errors.labels(method=parsed.type, code=e.code).inc()
            log.warning("rpc_rejected", method=parsed.type, code=e.code, err=str(e))
            return ws_msg(res_type, id_=parsed.id, ok=False, err={"code": e.code, "message": str(e)})
        except (KeyError, ValueError) as e:
            metrics.rpc_errors.labels(method=parsed.type, code="bad_request").inc()
            return ws_msg(res_type, id_=parsed.id, ok=False, err={"code": "bad_request", "message": str(e)})
        except Exception as e:
            metrics.rpc_errors.labels(method=parsed.type, code="internal").inc()
            log.exception("rpc_failed", method=parsed.type, err=str(e))
            return ws_msg(res_type, id_=parsed.id, ok=False, err={"code": "internal", "message": "rpc_failed"})


async def pump_events(ws: WebSocket, bus: EventBus) -> None:
    """Server push: every bus event goes out as `evt:<name>`."""
    sub = bus.subscribe()
    try:
        async for evt in bus.iter(sub):
            msg = ws_msg(
                f"evt:{evt.type.value}",
                id_=f"evt_{evt.seq}",
                payload={"seq": evt.seq, **(evt.payload or {})},
                ts=evt.ts,
            )
            await ws.send_text(json.dumps(msg))
    finally:
        bus.unsubscribe(sub)


async def serve_ws(ws: WebSocket, router: WSRouter, bus: EventBus) -> None:
    await ws.accept()
    metrics.ws_connections.inc()

    pump_task = asyncio.create_task(pump_events(ws, bus))

    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await ws.send_text(
                    json.dumps(ws_msg("res:error", ok=False, err={"code": "bad_json", "message": "invalid json"}))
                )
                continue
            res = await router.handle(data)
            await ws.send_text(json.dumps(res))

    except WebSocketDisconnect:
        return
    finally:
        pump_task.cancel()
        metrics.ws_connections.dec()
