from collections.abc import Callable
from typing import Protocol

from voice_transcribe.domain.events import (
    TransportClosed,
    TransportFailed,
    TransportMessage,
    TransportOpened,
)


class TransportPort(Protocol):
    """Full-duplex message channel.

    Handlers are plain attributes, called on the event loop thread. Setting
    a handler to None detaches it. ``send`` never blocks; messages go out in
    the order they were queued.
    """

    on_open: Callable[[TransportOpened], None] | None
    on_message: Callable[[TransportMessage], None] | None
    on_close: Callable[[TransportClosed], None] | None
    on_error: Callable[[TransportFailed], None] | None

    def send(self, data: str | bytes) -> None: ...
    def close(self) -> None: ...


TransportFactory = Callable[[str], TransportPort]
