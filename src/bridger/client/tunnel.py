"""Tunnel session: one broker connection from dial to close."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any

import aiohttp
import structlog

from bridger.client.relay import HttpRelay
from bridger.core.config import ClientConfig
from bridger.core.exceptions import DecodeError, EncodeError
from bridger.observability.metrics import TUNNEL_CONNECTED, TUNNEL_SESSIONS
from bridger.protocol.messages import (
    RegistrationMessage,
    decode_request,
    encode_message,
)

logger = structlog.get_logger()

# Errors that mean the connection itself is gone or unusable.
CONNECTION_ERRORS = (aiohttp.ClientError, ConnectionError)

CLOSED_MESSAGE_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
    aiohttp.WSMsgType.ERROR,
)


class SessionState(Enum):
    """Tunnel session state."""

    CONNECTING = "connecting"
    REGISTERED = "registered"
    SERVING = "serving"
    CLOSED = "closed"


class CloseReason(Enum):
    """Why a session reached CLOSED."""

    DIAL_FAILED = "dial_failed"
    REGISTER_FAILED = "register_failed"
    CONNECTION_LOST = "connection_lost"
    PONG_FAILED = "pong_failed"
    DECODE_FAILED = "decode_failed"
    ENCODE_FAILED = "encode_failed"
    WRITE_FAILED = "write_failed"


class TunnelSession:
    """Owns a single WebSocket connection to the broker.

    The session dials, registers the identity, then serves request frames one
    at a time until anything goes wrong. Every failure ends in CLOSED; the
    session never tries to repair a connection. Sessions are single-use, the
    supervisor creates a fresh one for each attempt.
    """

    def __init__(self, config: ClientConfig, identity: str) -> None:
        self.config = config
        self.identity = identity

        self._state = SessionState.CONNECTING
        self._state_hooks: list[Callable[[SessionState], None]] = []
        self._close_reason: CloseReason | None = None
        self._close_error: BaseException | None = None

        self._requests_relayed = 0
        self._bytes_sent = 0
        self._bytes_received = 0

    @property
    def state(self) -> SessionState:
        """Get current session state."""
        return self._state

    @property
    def close_reason(self) -> CloseReason | None:
        """Why the session closed, None while it is still running."""
        return self._close_reason

    @property
    def close_error(self) -> BaseException | None:
        """The exception behind the close, if there was one."""
        return self._close_error

    @property
    def stats(self) -> dict[str, Any]:
        """Get session statistics."""
        return {
            "state": self._state.value,
            "close_reason": self._close_reason.value if self._close_reason else None,
            "requests_relayed": self._requests_relayed,
            "bytes_sent": self._bytes_sent,
            "bytes_received": self._bytes_received,
        }

    def add_state_hook(self, hook: Callable[[SessionState], None]) -> None:
        """Add a hook to be called on state changes."""
        self._state_hooks.append(hook)

    def remove_state_hook(self, hook: Callable[[SessionState], None]) -> None:
        """Remove a state change hook."""
        if hook in self._state_hooks:
            self._state_hooks.remove(hook)

    def _set_state(self, state: SessionState) -> None:
        """Set state and notify hooks."""
        if self._state != state:
            old_state = self._state
            self._state = state
            logger.debug("State changed", old=old_state.value, new=state.value)
            for hook in self._state_hooks:
                try:
                    hook(state)
                except Exception as e:
                    logger.warning("State hook error", error=str(e))

    def _close(self, reason: CloseReason, error: BaseException | None = None) -> None:
        self._close_reason = reason
        self._close_error = error
        if error is not None:
            logger.warning(
                "Closing tunnel connection",
                reason=reason.value,
                error=str(error) or type(error).__name__,
            )
        else:
            logger.info("Closing tunnel connection", reason=reason.value)

    async def run(self) -> None:
        """Run the session until the connection is closed.

        Connection failures are not raised; inspect ``close_reason`` and
        ``close_error`` afterwards.

        Raises:
            RuntimeError: If the session has already run
        """
        if self._state == SessionState.CLOSED:
            raise RuntimeError("Tunnel session already closed")

        timeout = aiohttp.ClientTimeout(total=None, connect=self.config.connect_timeout)
        try:
            async with (
                aiohttp.ClientSession(timeout=timeout) as http,
                HttpRelay(self.config.local_host, timeout=self.config.request_timeout) as relay,
            ):
                try:
                    ws = await http.ws_connect(self.config.cloud_websocket, autoping=False)
                except (aiohttp.ClientError, OSError, TimeoutError) as e:
                    self._close(CloseReason.DIAL_FAILED, e)
                    return

                async with ws:
                    logger.info("Connected to broker", url=self.config.cloud_websocket)
                    if await self._register(ws):
                        TUNNEL_CONNECTED.set(1)
                        try:
                            await self._serve(ws, relay)
                        finally:
                            TUNNEL_CONNECTED.set(0)
        finally:
            if self._close_reason is not None:
                TUNNEL_SESSIONS.labels(reason=self._close_reason.value).inc()
            self._set_state(SessionState.CLOSED)
            logger.info("Connection closed", **self.stats)

    async def _register(self, ws: aiohttp.ClientWebSocketResponse) -> bool:
        """Send the registration message. Returns False if the session closed."""
        try:
            frame = encode_message(RegistrationMessage(private_server_id=self.identity))
            await self._send_frame(ws, frame)
        except (EncodeError, *CONNECTION_ERRORS) as e:
            self._close(CloseReason.REGISTER_FAILED, e)
            return False

        self._set_state(SessionState.REGISTERED)
        logger.info("Registered with broker", private_server_id=self.identity)
        return True

    async def _serve(self, ws: aiohttp.ClientWebSocketResponse, relay: HttpRelay) -> None:
        """Receive loop. Frames are handled strictly one after another."""
        self._set_state(SessionState.SERVING)

        while True:
            msg = await ws.receive()

            if msg.type == aiohttp.WSMsgType.PING:
                try:
                    await ws.pong(msg.data)
                except CONNECTION_ERRORS as e:
                    self._close(CloseReason.PONG_FAILED, e)
                    return
                continue

            if msg.type == aiohttp.WSMsgType.TEXT:
                if not await self._handle_text(ws, relay, msg.data):
                    return
                continue

            if msg.type in CLOSED_MESSAGE_TYPES:
                error = ws.exception() if msg.type == aiohttp.WSMsgType.ERROR else None
                if error is None and msg.type == aiohttp.WSMsgType.CLOSE:
                    logger.info("Broker closed the connection", code=msg.data, message=msg.extra)
                self._close(CloseReason.CONNECTION_LOST, error)
                return

            logger.debug("Ignoring frame", type=msg.type.name)

    async def _handle_text(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        relay: HttpRelay,
        data: str,
    ) -> bool:
        """Relay one request frame. Returns False if the session closed."""
        self._bytes_received += len(data)

        try:
            request = decode_request(data)
        except DecodeError as e:
            logger.error("Cannot decode request frame", error=e.message, data_len=len(data))
            self._close(CloseReason.DECODE_FAILED, e)
            return False

        log = logger.bind(request_id=request.request_id)
        log.info("Received request", method=request.method, path=request.path)

        response = await relay.execute(request)

        try:
            frame = encode_message(response)
        except EncodeError as e:
            log.error("Cannot encode response", error=e.message)
            self._close(CloseReason.ENCODE_FAILED, e)
            return False

        try:
            await self._send_frame(ws, frame)
        except CONNECTION_ERRORS as e:
            log.error("Cannot send response", error=str(e) or type(e).__name__)
            self._close(CloseReason.WRITE_FAILED, e)
            return False

        self._requests_relayed += 1
        log.info("Response sent", status=response.status_code)
        return True

    async def _send_frame(self, ws: aiohttp.ClientWebSocketResponse, frame: bytes) -> None:
        await ws.send_str(frame.decode("utf-8"))
        self._bytes_sent += len(frame)
