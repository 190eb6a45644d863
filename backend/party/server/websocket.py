from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from party.messaging.encoder import DecodeError, decode
from party.messaging.protocol import ConnectionProtocol
from party.messaging.types import ERROR_KINDS, ErrorMessage, SessionErrorCode
from party.server.rate_limit import TokenBucket
from party.session.ids import new_connection_handle

logger = structlog.get_logger()

if TYPE_CHECKING:
    from party.messaging.router import MessageRouter

# Rate limit: 30 messages/sec sustained, burst of 60. Tap games are the
# busiest client traffic at roughly 15 taps/sec from a fast thumb.
_RATE_LIMIT_RATE = 30.0
_RATE_LIMIT_BURST = 60

# Disconnect after this many consecutive decode errors
_MAX_DECODE_ERRORS = 5


def _error(code: SessionErrorCode, message: str) -> dict:
    return ErrorMessage(code=code, kind=ERROR_KINDS[code], message=message).model_dump()


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or new_connection_handle()

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    bucket = TokenBucket(rate=_RATE_LIMIT_RATE, burst=_RATE_LIMIT_BURST)
    decode_errors = 0

    try:
        while True:
            raw = await connection.receive_bytes()

            # Decode before the rate check so malformed frames always count as strikes.
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await connection.send_message(_error(SessionErrorCode.INVALID_MESSAGE, str(e)))
                if decode_errors >= _MAX_DECODE_ERRORS:
                    logger.info("too many decode errors, disconnecting")
                    await connection.close(code=4004, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0

            if not bucket.consume():
                await connection.send_message(_error(SessionErrorCode.RATE_LIMITED, "Too many messages"))
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
