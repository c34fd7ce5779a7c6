"""Per-connection terminal gateway.

One GatewayConnection exists per client WebSocket. It translates inbound
attach/input/resize/detach messages into session operations and acts as the
session's sink, forwarding output/exit events back to the client.

Architecture:
    Backend reader thread
        TerminalSession._on_data()
            ↓ connection.send_output(session_id, data)
            ↓ call_soon_threadsafe
    FastAPI main loop
        GatewayConnection._forward_messages()
            ↓ queue.get()
            ↓ websocket.send_json(event)
        Browser (xterm.js)

The outbound queue has a single consumer, so events reach the client in the
order the session produced them (replay first, then live output).
"""

import asyncio
import codecs
import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket
from pydantic import ValidationError as PydanticValidationError

from ..schema.gateway import (
    CLIENT_MESSAGE_TYPES,
    AttachMessage,
    DetachedEvent,
    DetachMessage,
    ErrorEvent,
    ExitEvent,
    InputMessage,
    OutputEvent,
    ResizeMessage,
    client_message_adapter,
)
from ..terminal.registry import SessionRegistry

logger = logging.getLogger(__name__)

# Queue item kinds
_OUTPUT = "output"
_EVENT = "event"
_RESET_DECODER = "reset"


class GatewayConnection:
    """
    Protocol handler for one client connection.

    Holds at most one "currently attached" session id. Implements the
    SessionSink protocol; sink methods are called from backend threads and
    only schedule work on the event loop.

    Lifecycle:
    1. start() - Begin forwarding queued events to the WebSocket
    2. handle_text() - Process each inbound frame
    3. close() - Detach (same as an explicit detach) and stop forwarding

    Attributes:
        connection_id: Short id used in logs
        websocket: Client WebSocket
        registry: Session registry shared by all connections
        attached_session_id: Session currently streaming to this connection
    """

    def __init__(self, websocket: WebSocket, registry: SessionRegistry):
        self.connection_id = uuid.uuid4().hex[:8]
        self.websocket = websocket
        self.registry = registry
        self.attached_session_id: Optional[str] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._closed = False

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._forward_messages())

        def task_done_callback(t: asyncio.Task):
            if not t.cancelled() and t.exception():
                exc = t.exception()
                logger.error(
                    f"Forwarding task failed for connection {self.connection_id}: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__)
                )

        self._task.add_done_callback(task_done_callback)
        logger.info(f"Gateway connection opened: {self.connection_id}")

    async def close(self) -> None:
        """Detach from the current session and stop forwarding"""
        self.detach()
        self._closed = True

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=1.0)
            except asyncio.CancelledError:
                pass
            except asyncio.TimeoutError:
                logger.warning(f"Forwarding task cancellation timed out: {self.connection_id}")

        logger.info(f"Gateway connection closed: {self.connection_id}")

    # ==================== Inbound ====================

    async def handle_text(self, text: str) -> None:
        """Parse and dispatch one inbound frame

        Malformed frames and unknown types produce an error event for this
        connection only.
        """
        try:
            raw = json.loads(text)
        except (TypeError, ValueError) as e:
            self._send_error(f"Invalid message format: {e}")
            return

        if not isinstance(raw, dict):
            self._send_error("Invalid message format: expected a JSON object")
            return

        message_type = raw.get("type")
        # Echoed back on errors only when it is usable as an id
        session_id = raw.get("sessionId") if isinstance(raw.get("sessionId"), str) else None
        if message_type not in CLIENT_MESSAGE_TYPES:
            logger.warning(f"Unknown message type on connection {self.connection_id}: {message_type}")
            self._send_error(f"Unknown message type: {message_type}", session_id)
            return

        try:
            message = client_message_adapter.validate_python(raw)
        except PydanticValidationError as e:
            self._send_error(
                f"Invalid message format: {e.errors()[0].get('msg', 'validation failed')}",
                session_id,
            )
            return

        if isinstance(message, AttachMessage):
            self.attach(message.session_id)
        elif isinstance(message, InputMessage):
            self.send_input(message.session_id, message.data)
        elif isinstance(message, ResizeMessage):
            self.resize(message.session_id, message.cols, message.rows)
        elif isinstance(message, DetachMessage):
            self.detach()

    def attach(self, session_id: str) -> bool:
        """Bind this connection as the session's sink

        Steps:
        1. Look up the session, reply error if absent
        2. Leave the previously attached session, if any
        3. Session replays its buffer and registers this connection
        """
        session = self.registry.get(session_id)
        if session is None:
            self._send_error("Session not found", session_id)
            return False

        if self.attached_session_id and self.attached_session_id != session_id:
            self.detach()

        self._schedule(self._enqueue, (_RESET_DECODER, session_id, None))
        self.attached_session_id = session_id
        session.attach(self)

        logger.info(f"Connection {self.connection_id} attached to session {session_id}")
        return True

    def send_input(self, session_id: str, data: str) -> None:
        session = self.registry.get(session_id)
        if session is None or not session.write(data.encode("utf-8")):
            logger.debug(f"Input dropped: session_id={session_id}, connection={self.connection_id}")

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        session = self.registry.get(session_id)
        if session is not None and session.running:
            session.resize(cols, rows)

    def detach(self) -> None:
        """Leave the attached session; no-op when not attached"""
        session_id, self.attached_session_id = self.attached_session_id, None
        if session_id is None:
            return

        session = self.registry.get(session_id)
        if session is not None:
            session.detach(self)
        logger.info(f"Connection {self.connection_id} detached from session {session_id}")

    # ==================== SessionSink ====================

    def send_output(self, session_id: str, data: bytes) -> None:
        self._schedule(self._enqueue, (_OUTPUT, session_id, data))

    def send_exit(self, session_id: str, code: int) -> None:
        self._schedule(self._on_session_ended, session_id, ExitEvent(session_id=session_id, code=code))

    def send_detached(self, session_id: str, reason: str) -> None:
        self._schedule(
            self._on_session_ended, session_id, DetachedEvent(session_id=session_id, reason=reason)
        )

    def _schedule(self, callback, *args) -> None:
        if self._closed or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Event loop already closed (server shutdown)
            logger.debug(f"Event dropped, loop closed: connection={self.connection_id}")

    def _on_session_ended(self, session_id: str, event) -> None:
        # Runs on the event loop. A re-attach may have happened since the
        # event was scheduled, so only forget the session if it dropped us.
        if self.attached_session_id == session_id:
            session = self.registry.get(session_id)
            if session is None or not session.has_sink(self):
                self.attached_session_id = None
        self._enqueue((_EVENT, session_id, event))

    def _enqueue(self, item) -> None:
        self._queue.put_nowait(item)

    def _send_error(self, message: str, session_id: Optional[str] = None) -> None:
        if not isinstance(session_id, str):
            session_id = None
        event = ErrorEvent(session_id=session_id, message=str(message))
        # Scheduled like sink events so replies keep their order behind pending output
        self._schedule(self._enqueue, (_EVENT, session_id, event))

    # ==================== Outbound ====================

    def _render(self, item) -> Optional[Dict[str, Any]]:
        kind, session_id, payload = item
        if kind == _RESET_DECODER:
            self._decoder.reset()
            return None
        if kind == _OUTPUT:
            text = self._decoder.decode(payload)
            if not text:
                return None
            return OutputEvent(session_id=session_id, data=text).model_dump(by_alias=True)
        return payload.model_dump(by_alias=True)

    async def _forward_messages(self) -> None:
        """Forward queued events to the WebSocket (single consumer)"""
        logger.debug(f"Forwarding task started: {self.connection_id}")
        try:
            while True:
                item = await self._queue.get()
                message = self._render(item)
                if message is None:
                    continue
                try:
                    await self.websocket.send_json(message)
                except Exception as e:
                    logger.info(f"Send failed on connection {self.connection_id}: {e}")
                    break
        except asyncio.CancelledError:
            logger.debug(f"Forwarding task cancelled: {self.connection_id}")
            raise
        finally:
            logger.debug(f"Forwarding task ended: {self.connection_id}")
