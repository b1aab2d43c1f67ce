from __future__ import annotations
from fastapi import FastAPI, WebSocket, Depends, Header, HTTPException
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel
from chatbridge.bus import EventBus
from chatbridge.config import Settings
from chatbridge.core.bridge import Bridge
from chatbridge.domain.errors import BridgeError, NotConnected, SendFailed, SessionEstablishmentFailed
from chatbridge.persistence.db import make_engine, make_session_factory
from chatbridge.persistence.migrations import init_db
from chatbridge.security.auth import client_key_dependency, verify_client_key
from chatbridge.server.ws import WSRouter, serve_ws
from chatbridge.transport.base import SessionFactory
from chatbridge.observability.logging import configure_logging, get_logger

log = get_logger("app")

VERSION = "0.1.0"

HTTP_STATUS = {
    NotConnected: 409,
    SendFailed: 502,
    SessionEstablishmentFailed: 503,
}

class SendRequest(BaseModel):
    to: str
    body: str

def _http_error(e: BridgeError) -> HTTPException:
    return HTTPException(status_code=HTTP_STATUS.get(type(e), 500), detail={"code": e.code, "message": str(e)})

def create_app(settings: Settings, transport: SessionFactory | None = None) -> FastAPI:
    configure_logging(settings.log_level, settings.json_logs)
    app = FastAPI(title="Chat Bridge", version=VERSION)

    engine = make_engine(settings)
    session_factory = make_session_factory(engine)
    bus = EventBus()
    bridge = Bridge.from_settings(settings, session_factory, bus, transport=transport)
    app.state.bridge = bridge

    @app.on_event("startup")
    async def _startup():
        await init_db(engine)
        log.info("bridge_started", host=settings.host, port=settings.port)
        if settings.auto_connect:
            try:
                await bridge.initialize()
            except SessionEstablishmentFailed as e:
                log.error("auto_connect_failed", err=str(e))

    @app.on_event("shutdown")
    async def _shutdown():
        await bridge.aclose()
        await engine.dispose()

    require_client = client_key_dependency(settings)

    # health/metrics
    @app.get(settings.health_path)
    async def healthz():
        return {"ok": True, "service": "chatbridge", "version": VERSION, "state": bridge.status.state.value}

    @app.get(settings.metrics_path)
    async def metrics_endpoint():
        return PlainTextResponse(generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    # REST
    @app.get("/api/session")
    async def get_session(x_api_key: str | None = Header(default=None)):
        session = await bridge.describe_session()
        # open for health probes, but the pairing challenge stays behind the key
        if not verify_client_key(settings, x_api_key):
            session["qr_code"] = None
        return session

    @app.post("/api/session/connect", dependencies=[Depends(require_client)])
    async def connect():
        try:
            await bridge.initialize()
        except BridgeError as e:
            raise _http_error(e) from e
        return await bridge.describe_session()

    @app.post("/api/session/disconnect", dependencies=[Depends(require_client)])
    async def disconnect():
        await bridge.disconnect()
        return await bridge.describe_session()

    @app.get("/api/contacts", dependencies=[Depends(require_client)])
    async def contacts():
        return {"contacts": [c.model_dump(mode="json") for c in await bridge.list_contacts()]}

    @app.get("/api/messages/{chat_id}", dependencies=[Depends(require_client)])
    async def messages(chat_id: str, limit: int = 50):
        msgs = await bridge.list_messages(chat_id, limit=limit)
        return {"messages": [m.model_dump(mode="json", by_alias=True) for m in msgs]}

    @app.post("/api/messages", dependencies=[Depends(require_client)])
    async def send(req: SendRequest):
        try:
            msg = await bridge.send_message(req.to, req.body)
        except BridgeError as e:
            raise _http_error(e) from e
        return {"message": msg.model_dump(mode="json", by_alias=True)}

    # Control-plane WS (RPC + server push)
    router = build_router(bridge)

    @app.websocket(settings.ws_path)
    async def ws_endpoint(ws: WebSocket, _=Depends(require_client)):
        await serve_ws(ws, router, bus)

    return app

def build_router(bridge: Bridge) -> WSRouter:
    return WSRouter(handler_map={
        "req:hello": lambda payload: hello(payload, bridge),
        "req:session.get": lambda payload: session_get(payload, bridge),
        "req:session.connect": lambda payload: session_connect(payload, bridge),
        "req:session.disconnect": lambda payload: session_disconnect(payload, bridge),
        "req:contacts.list": lambda payload: contacts_list(payload, bridge),
        "req:chat.messages": lambda payload: chat_messages(payload, bridge),
        "req:message.send": lambda payload: message_send(payload, bridge),
    })

async def hello(payload, bridge: Bridge):
    return {
        "server": "chatbridge",
        "version": VERSION,
        "state": bridge.status.model_dump(mode="json"),
        "events": ["qr", "ready", "disconnected", "message"],
    }

async def session_get(payload, bridge: Bridge):
    return {"session": await bridge.describe_session()}

async def session_connect(payload, bridge: Bridge):
    await bridge.initialize()
    return {"session": await bridge.describe_session()}

async def session_disconnect(payload, bridge: Bridge):
    await bridge.disconnect()
    return {"session": await bridge.describe_session()}

async def contacts_list(payload, bridge: Bridge):
    return {"contacts": [c.model_dump(mode="json") for c in await bridge.list_contacts()]}

async def chat_messages(payload, bridge: Bridge):
    chat_id = payload["chat_id"]
    limit = int(payload.get("limit", 50))
    msgs = await bridge.list_messages(chat_id, limit=limit)
    return {"messages": [m.model_dump(mode="json", by_alias=True) for m in msgs]}

async def message_send(payload, bridge: Bridge):
    msg = await bridge.send_message(payload["to"], payload["body"])
    return {"message": msg.model_dump(mode="json", by_alias=True)}
