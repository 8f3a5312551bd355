from __future__ import annotations

from typing import Callable, Protocol


OpenHandler = Callable[[], None]
MessageHandler = Callable[[bytes], None]
CloseHandler = Callable[[], None]
ErrorHandler = Callable[[BaseException], None]


class Transport(Protocol):
    """
    Duplex byte transport consumed by `SimClient`.

    Handlers are invoked on the thread/loop that owns the connection, one
    message at a time and in arrival order.
    """

    def send(self, data: bytes) -> None:
        """Send one frame; a no-op (with a warning) when not open."""
        ...

    def is_open(self) -> bool: ...

    def bind(
        self,
        *,
        on_open: OpenHandler | None = None,
        on_message: MessageHandler | None = None,
        on_close: CloseHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None: ...
