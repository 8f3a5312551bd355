from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .transport import CloseHandler, ErrorHandler, MessageHandler, OpenHandler


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebSocketTransportConfig:
    url: str
    max_size: int = 8 * 1024 * 1024
    open_timeout: float = 5.0


class WebSocketTransport:
    """
    Duplex websocket transport for `SimClient`.

    - A reader task hands every binary frame to `on_message` inline on the
      event loop, so messages are processed strictly in arrival order.
    - `send` is synchronous: frames go through an outbound queue drained by a
      writer task, preserving send order.
    - No automatic reconnection.
    """

    def __init__(self, config: WebSocketTransportConfig) -> None:
        self._config = config
        self._ws: Any = None
        self._outbox: asyncio.Queue[bytes] | None = None
        self._tasks: list[asyncio.Task[Any]] = []
        self._closed = asyncio.Event()
        self._on_open: OpenHandler | None = None
        self._on_message: MessageHandler | None = None
        self._on_close: CloseHandler | None = None
        self._on_error: ErrorHandler | None = None

    @property
    def url(self) -> str:
        return self._config.url

    def bind(
        self,
        *,
        on_open: OpenHandler | None = None,
        on_message: MessageHandler | None = None,
        on_close: CloseHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error

    def is_open(self) -> bool:
        ws = self._ws
        return ws is not None and ws.state is State.OPEN

    async def connect(self) -> None:
        if self.is_open():
            log.warning("websocket already connected url=%s", self.url)
            return
        self._ws = await websockets.connect(
            self.url,
            max_size=int(self._config.max_size),
            open_timeout=float(self._config.open_timeout),
        )
        self._closed = asyncio.Event()
        self._outbox = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._reader(), name=f"ws_reader:{self.url}"),
            asyncio.create_task(self._writer(), name=f"ws_writer:{self.url}"),
        ]
        log.info("websocket connection opened url=%s", self.url)
        self._call(self._on_open)

    def send(self, data: bytes) -> None:
        if not self.is_open() or self._outbox is None:
            log.warning("websocket not open, cannot send")
            return
        self._outbox.put_nowait(bytes(data))

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def close(self) -> None:
        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except Exception as exc:
                log.debug("websocket close failed url=%s", self.url, exc_info=exc)
        tasks = list(self._tasks)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._finish()

    async def _reader(self) -> None:
        ws = self._ws
        try:
            async for frame in ws:
                if isinstance(frame, str):
                    frame = frame.encode("utf-8")
                handler = self._on_message
                if handler is None:
                    continue
                try:
                    handler(bytes(frame))
                except Exception as exc:
                    log.error("message handler failed url=%s", self.url, exc_info=exc)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed:
            pass
        except Exception as exc:
            log.error("websocket read failed url=%s", self.url, exc_info=exc)
            self._call(self._on_error, exc)
        self._finish()

    async def _writer(self) -> None:
        outbox = self._outbox
        ws = self._ws
        if outbox is None or ws is None:
            return
        while True:
            data = await outbox.get()
            try:
                await ws.send(data)
            except ConnectionClosed:
                log.warning("websocket closed while sending; %d bytes dropped", len(data))
                return
            except Exception as exc:
                log.error("websocket send failed url=%s", self.url, exc_info=exc)
                self._call(self._on_error, exc)

    def _finish(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._ws = None
        self._outbox = None
        log.info("websocket connection closed url=%s", self.url)
        self._call(self._on_close)

    def _call(self, handler: Any, *args: Any) -> None:
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as exc:
            log.error("transport callback failed url=%s", self.url, exc_info=exc)
