import asyncio
import logging
from collections.abc import Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidHandshake, InvalidURI

from voice_transcribe.domain.events import (
    TransportClosed,
    TransportFailed,
    TransportMessage,
    TransportOpened,
)

logger = logging.getLogger(__name__)

ABNORMAL_CLOSURE = 1006


class WebSocketTransport:
    """Websocket client exposing open/message/close/error handlers.

    Connecting starts as soon as the transport is created, so it must be
    created inside a running event loop. Outbound messages are queued and
    written by a single task, in order.
    """

    def __init__(self, uri: str, open_timeout: float | None = 10.0) -> None:
        self.on_open: Callable[[TransportOpened], None] | None = None
        self.on_message: Callable[[TransportMessage], None] | None = None
        self.on_close: Callable[[TransportClosed], None] | None = None
        self.on_error: Callable[[TransportFailed], None] | None = None
        self._uri = uri
        self._open_timeout = open_timeout
        self._outbox: asyncio.Queue[str | bytes] = asyncio.Queue()
        self._closing = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, data: str | bytes) -> None:
        if self._closing:
            logger.warning("Transport closed, dropping %d byte message", len(data))
            return
        self._outbox.put_nowait(data)

    def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._task.cancel()
        logger.debug("Transport to %s closed", self._uri)

    async def _run(self) -> None:
        try:
            async with connect(self._uri, max_size=None, open_timeout=self._open_timeout) as connection:
                logger.info("Connected to %s", self._uri)
                self._dispatch("on_open", TransportOpened())
                writer = asyncio.create_task(self._write_loop(connection))
                try:
                    async for message in connection:
                        self._dispatch("on_message", TransportMessage(data=message))
                except ConnectionClosedError:
                    pass
                finally:
                    writer.cancel()
                code = connection.close_code or ABNORMAL_CLOSURE
                reason = connection.close_reason or ""
        except (OSError, TimeoutError, InvalidURI, InvalidHandshake) as exc:
            logger.warning("Connection to %s failed: %s", self._uri, exc)
            self._dispatch("on_error", TransportFailed(detail=str(exc)))
            self._dispatch("on_close", TransportClosed(code=ABNORMAL_CLOSURE, reason=""))
            return

        logger.info("Connection closed (code=%d, reason=%s)", code, reason)
        self._dispatch("on_close", TransportClosed(code=code, reason=reason))

    async def _write_loop(self, connection: ClientConnection) -> None:
        while True:
            data = await self._outbox.get()
            try:
                await connection.send(data)
            except ConnectionClosed:
                logger.warning("Connection closed, dropping outbound messages")
                return

    def _dispatch(self, name: str, event) -> None:
        handler = getattr(self, name)
        if handler is None:
            return
        try:
            handler(event)
        except Exception:
            logger.exception("Transport %s handler failed", name)
