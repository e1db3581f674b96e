from collections.abc import Callable
from typing import Protocol

import numpy as np

AudioBlockCallback = Callable[[np.ndarray], None]


class AudioStreamPort(Protocol):
    """A granted capture resource.

    ``start`` may invoke the callback from a foreign thread with mono float32
    blocks. ``close`` releases the device; the stream cannot be restarted
    afterwards.
    """

    @property
    def sample_rate(self) -> float: ...
    def start(self, callback: AudioBlockCallback, playback: bool = False) -> None: ...
    def stop(self) -> None: ...
    def close(self) -> None: ...


class MediaDevicesPort(Protocol):
    async def get_user_media(self) -> AudioStreamPort: ...


class MediaAccessError(Exception):
    pass
