"""
Transport contract used by the realtime event layer, and a WebSocket
implementation of it built on ``websockets``.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Protocol, Union, runtime_checkable

import websockets

from src.realtime_core import settings
from utils.ml_logging import get_logger

logger = get_logger(__name__)

RawMessage = Union[str, bytes]
MessageCallback = Callable[[RawMessage], Any]
CloseCallback = Callable[[bool], Any]


@runtime_checkable
class Transport(Protocol):
    """
    Anything able to carry raw protocol frames. ``listen`` receives the
    callbacks the core wants invoked once per inbound frame, in arrival
    order, and once when the connection is lost.
    """

    def is_open(self) -> bool: ...

    def send(self, raw_message: str) -> bool: ...

    def close(self) -> None: ...

    def listen(self, on_message: MessageCallback, on_close: CloseCallback) -> None: ...


class WebSocketTransport:
    """
    WebSocket transport for the Realtime API.

    ``send`` is synchronous: frames go onto an outgoing queue drained by a
    writer task, so callers never await the socket.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        model: Optional[str] = settings.REALTIME_MODEL,
        connector: Callable[..., Any] = websockets.connect,
    ) -> None:
        base_url = url or settings.REALTIME_URL
        self.url: str = f"{base_url}?model={model}" if model and "?" not in base_url else base_url
        self.headers: Dict[str, str] = headers or {}
        self._connector = connector
        self.ws = None
        self._outgoing: Optional[asyncio.Queue] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._closing: bool = False
        self._on_message: Optional[MessageCallback] = None
        self._on_close: Optional[CloseCallback] = None

    def listen(self, on_message: MessageCallback, on_close: CloseCallback) -> None:
        self._on_message = on_message
        self._on_close = on_close

    def is_open(self) -> bool:
        return self.ws is not None and not self._closing

    async def connect(self) -> bool:
        """
        Open the WebSocket connection and start the reader and writer tasks.
        """
        if self.ws is not None:
            raise RuntimeError("Already connected.")

        logger.info(f"Connecting to Realtime API at {self.url}")
        try:
            self.ws = await self._connector(self.url, additional_headers=self.headers)
        except (OSError, websockets.InvalidHandshake) as e:
            logger.error(f"Failed to connect to Realtime API: {e}")
            raise

        self._closing = False
        self._outgoing = asyncio.Queue()
        self._reader_task = asyncio.create_task(self._receive_messages())
        self._writer_task = asyncio.create_task(self._send_messages())
        logger.info(f"Connected to {self.url}")
        return True

    def send(self, raw_message: str) -> bool:
        if not self.is_open():
            logger.warning("Cannot send frame, WebSocket is not open.")
            return False
        self._outgoing.put_nowait(raw_message)
        return True

    def close(self) -> None:
        """
        Stop accepting frames; the writer flushes what is queued, then closes the socket.
        """
        if self.ws is None or self._closing:
            return
        self._closing = True
        self._outgoing.put_nowait(None)

    async def wait_closed(self) -> None:
        tasks = [t for t in (self._writer_task, self._reader_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _send_messages(self) -> None:
        ws = self.ws
        try:
            while True:
                message = await self._outgoing.get()
                if message is None:
                    break
                await ws.send(message)
                logger.debug(f"Sent frame: {message[:200]}")
        except websockets.ConnectionClosed as e:
            logger.warning(f"WebSocket closed while sending: {e}")
        finally:
            await ws.close()

    async def _receive_messages(self) -> None:
        """
        Continuously listen for incoming WebSocket frames and hand them to the core.
        """
        error = False
        try:
            async for message in self.ws:
                if self._on_message is not None:
                    self._on_message(message)
        except websockets.ConnectionClosed as e:
            logger.warning(f"WebSocket connection closed: {e}")
            error = not self._closing
        except Exception as e:
            logger.error(f"WebSocket reader failed: {e}", exc_info=True)
            error = True
        finally:
            self._finish(error)

    def _finish(self, error: bool) -> None:
        was_closing = self._closing
        self._closing = True
        if self._writer_task is not None and not self._writer_task.done() and not was_closing:
            self._outgoing.put_nowait(None)
        self.ws = None
        logger.info("Disconnected from Realtime API.")
        if self._on_close is not None:
            self._on_close(error)
