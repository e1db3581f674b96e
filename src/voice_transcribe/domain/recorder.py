import asyncio
import logging
from collections.abc import Callable
from typing import Any

import numpy as np

from voice_transcribe.adapters.encoder_worker import EncoderWorker
from voice_transcribe.domain.events import FrameEncoded, RecordingEnded
from voice_transcribe.ports.audio import AudioStreamPort

logger = logging.getLogger(__name__)

INACTIVE = "inactive"
RECORDING = "recording"


class RecorderError(Exception):
    pass


class AudioRecorder:
    """Pulls audio from a capture stream and emits PCM frames.

    Frames are delivered to ``on_data`` as FrameEncoded events, in the order
    the encoder produced them. After ``stop()`` any remaining frames are
    delivered, followed by exactly one RecordingEnded event on ``on_end``.
    """

    def __init__(
        self,
        stream: AudioStreamPort,
        worker_factory: Callable[[], EncoderWorker] = EncoderWorker,
    ) -> None:
        self._stream = stream
        self.on_data: Callable[[FrameEncoded], None] | None = None
        self.on_end: Callable[[RecordingEnded], None] | None = None
        self._state = INACTIVE
        self._max_output_size = 0
        self._remove_leading_silence = False
        self._slicing_task: asyncio.Task | None = None
        self._encoder = worker_factory()
        self._encoder.on_reply = self._on_encoder_reply

    @property
    def state(self) -> str:
        return self._state

    @property
    def sample_rate(self) -> float:
        return self._stream.sample_rate

    def start(
        self,
        time_slice_ms: int,
        max_output_size: int,
        playback: bool = False,
        remove_leading_silence: bool = False,
    ) -> None:
        if self._state != INACTIVE:
            raise RecorderError("recorder is active")

        self._state = RECORDING
        self._max_output_size = max_output_size
        self._remove_leading_silence = remove_leading_silence

        self._stream.start(self._on_audio_block, playback=playback)

        if time_slice_ms:
            self._slicing_task = asyncio.get_running_loop().create_task(
                self._slice_loop(time_slice_ms / 1000)
            )
        logger.debug(
            "Recorder started (slice=%dms, max_output=%d, playback=%s)",
            time_slice_ms, max_output_size, playback,
        )

    def stop(self) -> None:
        if self._state == INACTIVE:
            return

        self._state = INACTIVE

        if self._slicing_task is not None:
            self._slicing_task.cancel()
            self._slicing_task = None

        # Flush whatever is buffered, then report the end.
        self._post_dump()
        self._encoder.end()

        self._stream.stop()
        logger.debug("Recorder stopped")

    def terminate_worker(self) -> None:
        self._encoder.terminate()

    def _on_audio_block(self, samples: np.ndarray) -> None:
        if self._state == RECORDING:
            self._encoder.encode(samples, self._remove_leading_silence)

    def _post_dump(self) -> None:
        self._encoder.dump(self._max_output_size, self._remove_leading_silence)

    async def _slice_loop(self, interval: float) -> None:
        while self._state == RECORDING:
            await asyncio.sleep(interval)
            if self._state == RECORDING:
                self._post_dump()

    def _on_encoder_reply(self, kind: str, payload: Any) -> None:
        if kind == "data":
            if self.on_data is not None:
                self.on_data(FrameEncoded(data=payload))
        elif kind == "end":
            if self.on_end is not None:
                self.on_end(RecordingEnded())
