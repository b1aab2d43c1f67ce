"""Connection lifecycle: one protocol session, its state machine and reconnects."""
from __future__ import annotations

import asyncio
import contextlib
from typing import Any

from chatbridge.bus import EventSink
from chatbridge.core.ingest import MessageIngestPipeline
from chatbridge.core.reconnect import ReconnectPolicy
from chatbridge.domain.chat_ids import phone_from_user_id
from chatbridge.domain.errors import SessionEstablishmentFailed
from chatbridge.domain.models import (
    ConnectionState,
    ConnectionStatus,
    ConnectionUpdate,
    DisconnectReason,
    EventType,
    utcnow,
)
from chatbridge.observability import metrics
from chatbridge.observability.logging import bind_attempt, get_logger
from chatbridge.persistence.storage import Storage
from chatbridge.transport.base import ProtocolSession, SessionFactory
from chatbridge.transport.credentials import CredentialStore

log = get_logger("connection")


class ConnectionManager:
    """Owns the single protocol session and drives its lifecycle.

    Transport callbacks never touch state directly: they enqueue
    `(session, kind, payload)` and one pump task applies the events in
    arrival order. Event handling and the command operations share one lock,
    so no two transitions interleave. Events coming from a session that has
    since been replaced are dropped.

    States: idle -> connecting -> awaiting_qr -> open -> closed(reason),
    closed -> connecting through the reconnect policy, and
    any -> closing -> idle on `disconnect()`.
    """

    def __init__(
        self,
        storage: Storage,
        sink: EventSink,
        credentials: CredentialStore,
        session_factory: SessionFactory,
        pipeline: MessageIngestPipeline,
        policy: ReconnectPolicy | None = None,
    ):
        self.storage = storage
        self.sink = sink
        self.credentials = credentials
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.policy = policy or ReconnectPolicy()

        self._session: ProtocolSession | None = None
        self._status = ConnectionStatus()
        self._initialized = False
        self._attempt = 0
        self._lock = asyncio.Lock()
        self._events: asyncio.Queue[tuple[ProtocolSession, str, Any]] = asyncio.Queue()
        self._pump_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status.model_copy()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def get_connection_handle(self) -> ProtocolSession | None:
        return self._session

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        async with self._lock:
            if self._initialized:
                log.info("already_initialized", state=self._status.state.value)
                return
            self._initialized = True
            self._ensure_pump()
            try:
                await self._establish()
            except SessionEstablishmentFailed:
                self._initialized = False
                self._set_state(ConnectionState.idle)
                raise

    async def disconnect(self) -> None:
        async with self._lock:
            self._cancel_reconnect()
            self._set_state(ConnectionState.closing)
            session = self._session
            if session is not None:
                try:
                    await session.logout()
                except Exception as e:
                    log.warning("logout_failed", err=str(e))
            await self._retire()
            await self._persist(is_connected=False, phone_number=None, qr_code=None)
            self._initialized = False
            self._set_state(ConnectionState.idle)
            log.info("disconnected")

    async def aclose(self) -> None:
        """Shut down without logging out, so stored credentials survive a restart."""
        async with self._lock:
            self._cancel_reconnect()
            await self._retire()
            await self._persist(is_connected=False, qr_code=None)
            self._initialized = False
            self._set_state(ConnectionState.idle)
        if self._pump_task is not None:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
            self._pump_task = None

    async def drain(self) -> None:
        """Wait until every event received so far has been applied."""
        await self._events.join()

    # ------------------------------------------------------------------
    # Transport callbacks (SessionListener)
    # ------------------------------------------------------------------

    def on_connection_update(self, session: ProtocolSession, update: ConnectionUpdate) -> None:
        self._events.put_nowait((session, "connection", update))

    def on_messages_upserted(self, session: ProtocolSession, messages: list[dict[str, Any]]) -> None:
        self._events.put_nowait((session, "messages", messages))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_pump(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.create_task(self._pump(), name="chatbridge-events")

    async def _pump(self) -> None:
        while True:
            session, kind, payload = await self._events.get()
            try:
                async with self._lock:
                    if session is not self._session:
                        log.debug("stale_event_dropped", kind=kind)
                        continue
                    if kind == "connection":
                        await self._on_update(session, payload)
                    else:
                        await self.pipeline.ingest(payload, own_id=session.user_id)
            except Exception:
                log.exception("event_processing_failed", kind=kind)
            finally:
                self._events.task_done()

    async def _establish(self) -> None:
        await self._retire()
        self._attempt += 1
        bind_attempt(self._attempt)
        self._set_state(ConnectionState.connecting)
        log.info("connection_establishing", attempt=self._attempt)
        try:
            session = await self.session_factory(self.credentials)
        except Exception as e:
            raise SessionEstablishmentFailed(f"could not create session: {e}") from e
        session.subscribe(self)
        self._session = session
        try:
            await session.start()
        except Exception as e:
            await self._retire()
            raise SessionEstablishmentFailed(f"could not start session: {e}") from e

    async def _retire(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        session.unsubscribe(self)
        try:
            await session.close()
        except Exception as e:
            log.warning("session_close_failed", err=str(e))

    async def _on_update(self, session: ProtocolSession, update: ConnectionUpdate) -> None:
        if update.qr:
            self._set_state(ConnectionState.awaiting_qr)
            await self._persist(qr_code=update.qr, is_connected=False)
            log.info("qr_received")
            await self._emit(EventType.qr, {"qr": update.qr})

        if update.connection == "open":
            await self._on_open(session)
        elif update.connection == "close":
            await self._on_close(update)
        elif update.connection == "connecting" and self._status.state != ConnectionState.awaiting_qr:
            self._set_state(ConnectionState.connecting)

    async def _on_open(self, session: ProtocolSession) -> None:
        self._set_state(ConnectionState.open)
        phone = phone_from_user_id(session.user_id)
        await self._persist(
            phone_number=phone,
            is_connected=True,
            qr_code=None,
            last_connected_at=utcnow(),
        )
        log.info("connection_open", phone_number=phone)
        await self._emit(EventType.ready, {})
        await self.pipeline.sync_contacts(session)

    async def _on_close(self, update: ConnectionUpdate) -> None:
        reason = update.reason or DisconnectReason.describe(update.status_code)
        self._set_state(ConnectionState.closed, reason)
        await self._persist(is_connected=False, phone_number=None, qr_code=None)
        await self._emit(EventType.disconnected, {"reason": reason})

        if self.policy.should_reconnect(update.status_code):
            log.info("connection_closed", reason=reason, status_code=update.status_code, reconnect=True)
            self._schedule_reconnect()
            return

        log.warning("connection_logged_out", reason=reason, status_code=update.status_code)
        self._initialized = False
        try:
            self.credentials.clear()
        except Exception as e:
            log.warning("credentials_clear_failed", err=str(e))

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        self._reconnect_task = self.policy.schedule(self._reconnect)

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            log.info("reconnect_cancelled")

    async def _reconnect(self) -> None:
        async with self._lock:
            self._reconnect_task = None
            if not self._initialized:
                return
            try:
                await self._establish()
            except SessionEstablishmentFailed as e:
                log.warning("reconnect_failed", err=str(e))
                self._set_state(ConnectionState.closed, SessionEstablishmentFailed.code)
                self._schedule_reconnect()

    async def _persist(self, **fields: Any) -> None:
        try:
            await self.storage.update_session(**fields)
        except Exception as e:
            log.warning("session_persist_failed", fields=sorted(fields), err=str(e))

    async def _emit(self, etype: EventType, payload: dict[str, Any]) -> None:
        try:
            await self.sink.emit(etype.value, payload)
        except Exception as e:
            log.warning("emit_failed", event=etype.value, err=str(e))

    def _set_state(self, state: ConnectionState, reason: str | None = None) -> None:
        self._status = ConnectionStatus(state=state, reason=reason)
        for s in ConnectionState:
            metrics.connection_state.labels(state=s.value).set(1 if s == state else 0)
