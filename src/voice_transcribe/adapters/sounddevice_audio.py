import asyncio
import logging
import os
import threading
from dataclasses import dataclass

import numpy as np
import sounddevice as sd

from voice_transcribe.ports.audio import AudioBlockCallback, MediaAccessError

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 2048


@dataclass(frozen=True)
class AudioContext:
    device: int | None
    sample_rate: float


_context: AudioContext | None = None
_context_lock = threading.Lock()


def get_audio_context(device: str | int | None = None) -> AudioContext:
    """Return the process-wide capture context, creating it on first use.

    The device requested by the first caller is the one every later caller
    shares.
    """
    global _context
    with _context_lock:
        if _context is None:
            resolved = resolve_device(device)
            info = sd.query_devices(resolved, kind="input")
            _context = AudioContext(device=resolved, sample_rate=float(info["default_samplerate"]))
            logger.info(
                "Audio context created (device=%s, rate=%.0f)",
                info["name"], _context.sample_rate,
            )
        return _context


def capture_supported() -> bool:
    try:
        sd.query_devices(kind="input")
    except sd.PortAudioError:
        return False
    return True


def resolve_device(device: str | int | None) -> int | None:
    if device is None or device == "":
        return None
    if isinstance(device, int):
        return device
    try:
        return int(device)
    except ValueError:
        pass
    for i, dev in enumerate(sd.query_devices()):
        if device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
            logger.info("Resolved device '%s' -> %d (%s)", device, i, dev["name"])
            return i
    os.environ["PIPEWIRE_NODE"] = device
    logger.info("Device '%s' not in PortAudio, set PIPEWIRE_NODE for PipeWire routing", device)
    return None


class SounddeviceStream:
    """Mono float32 capture from a PortAudio input device.

    With playback enabled a duplex stream is opened and the input is copied
    straight to the output device.
    """

    def __init__(self, context: AudioContext, block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        self._context = context
        self._block_size = block_size
        self._stream: sd.InputStream | sd.Stream | None = None
        self._closed = False

    @property
    def sample_rate(self) -> float:
        return self._context.sample_rate

    def start(self, callback: AudioBlockCallback, playback: bool = False) -> None:
        if self._closed:
            raise MediaAccessError("Capture stream already closed")
        if self._stream is not None:
            raise MediaAccessError("Capture stream already started")

        def input_callback(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.warning("Audio capture status: %s", status)
            callback(indata[:, 0].copy())

        def duplex_callback(indata: np.ndarray, outdata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.warning("Audio duplex status: %s", status)
            outdata[:] = indata
            callback(indata[:, 0].copy())

        try:
            if playback:
                self._stream = sd.Stream(
                    device=(self._context.device, None),
                    samplerate=self._context.sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=self._block_size,
                    callback=duplex_callback,
                )
            else:
                self._stream = sd.InputStream(
                    device=self._context.device,
                    samplerate=self._context.sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=self._block_size,
                    callback=input_callback,
                )
            self._stream.start()
        except sd.PortAudioError as exc:
            self._stream = None
            raise MediaAccessError(str(exc)) from exc
        logger.info(
            "Audio capture started (rate=%.0f, block=%d, playback=%s)",
            self._context.sample_rate, self._block_size, playback,
        )

    def stop(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream.stop()
        stream.close()
        logger.info("Audio capture stopped")

    def close(self) -> None:
        self.stop()
        self._closed = True


class SounddeviceMediaDevices:
    def __init__(self, device: str | int | None = None, block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        self._device = device
        self._block_size = block_size

    async def get_user_media(self) -> SounddeviceStream:
        try:
            context = await asyncio.to_thread(get_audio_context, self._device)
        except (sd.PortAudioError, ValueError) as exc:
            raise MediaAccessError(str(exc)) from exc
        return SounddeviceStream(context, block_size=self._block_size)
