import asyncio
import json

import numpy as np
import pytest

from voice_transcribe.domain.events import (
    FrameEncoded,
    RecordingEnded,
    TransportClosed,
    TransportFailed,
    TransportMessage,
    TransportOpened,
)
from voice_transcribe.domain.session import RecordTranscribe
from voice_transcribe.ports.audio import MediaAccessError


SAMPLE_RATE = 48000
BLOCK_SIZE = 2048


def generate_silence(num_samples: int = BLOCK_SIZE) -> np.ndarray:
    return np.zeros(num_samples, dtype=np.float32)


def generate_sine_wave(
    frequency: float = 440.0,
    num_samples: int = BLOCK_SIZE,
    amplitude: float = 0.5,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    t = np.arange(num_samples) / sample_rate
    return (np.sin(2 * np.pi * frequency * t) * amplitude).astype(np.float32)


def make_response(
    finals: list[str] = (),
    nonfinals: list[str] = (),
    fpt: int = 0,
    tpt: int = 0,
    speakers: dict[int, str] | None = None,
) -> str:
    def words(texts, offset):
        return [{"t": text, "s": offset + i * 100, "d": 80, "spk": 1} for i, text in enumerate(texts)]

    response = {"fw": words(finals, 0), "nfw": words(nonfinals, 1000), "fpt": fpt, "tpt": tpt}
    if speakers is not None:
        response["spks"] = [{"spk": spk, "nm": name} for spk, name in speakers.items()]
    return json.dumps(response)


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeAudioStream:
    def __init__(self, sample_rate: float = SAMPLE_RATE) -> None:
        self._sample_rate = sample_rate
        self._callback = None
        self.started = False
        self.playback = False
        self.stopped = False
        self.closed = False
        self.fail_on_start = False

    @property
    def sample_rate(self) -> float:
        return self._sample_rate

    def start(self, callback, playback: bool = False) -> None:
        if self.fail_on_start:
            raise MediaAccessError("device busy")
        self._callback = callback
        self.playback = playback
        self.started = True

    def stop(self) -> None:
        self._callback = None
        self.stopped = True

    def close(self) -> None:
        self.stop()
        self.closed = True

    def feed(self, samples: np.ndarray) -> None:
        if self._callback is not None:
            self._callback(samples)


class FakeMediaDevices:
    """Grants a FakeAudioStream immediately, or when ``grant`` is called if ``auto`` is False."""

    def __init__(self, auto: bool = True, error: Exception | None = None) -> None:
        self._auto = auto
        self._error = error
        self._pending: asyncio.Future | None = None
        self.streams: list[FakeAudioStream] = []
        self.requests = 0

    async def get_user_media(self) -> FakeAudioStream:
        self.requests += 1
        if self._error is not None:
            raise self._error
        if not self._auto:
            self._pending = asyncio.get_running_loop().create_future()
            await self._pending
        stream = FakeAudioStream()
        self.streams.append(stream)
        return stream

    def grant(self) -> None:
        self._pending.set_result(None)


class FakeRecorder:
    def __init__(self, stream) -> None:
        self._stream = stream
        self.on_data = None
        self.on_end = None
        self.start_args: tuple | None = None
        self.stop_calls = 0
        self.terminated = False

    @property
    def sample_rate(self) -> float:
        return self._stream.sample_rate

    def start(self, time_slice_ms, max_output_size, playback=False, remove_leading_silence=False) -> None:
        self._stream.start(lambda samples: None, playback=playback)
        self.start_args = (time_slice_ms, max_output_size, playback, remove_leading_silence)

    def stop(self) -> None:
        self.stop_calls += 1

    def terminate_worker(self) -> None:
        self.terminated = True

    def emit_frame(self, data: bytes) -> None:
        if self.on_data is not None:
            self.on_data(FrameEncoded(data=data))

    def emit_end(self) -> None:
        if self.on_end is not None:
            self.on_end(RecordingEnded())


class FakeTransport:
    def __init__(self, uri: str) -> None:
        self.uri = uri
        self.on_open = None
        self.on_message = None
        self.on_close = None
        self.on_error = None
        self.sent: list[str | bytes] = []
        self.closed = False

    def send(self, data: str | bytes) -> None:
        self.sent.append(data)

    def close(self) -> None:
        self.closed = True

    def simulate_open(self) -> None:
        if self.on_open is not None:
            self.on_open(TransportOpened())

    def simulate_message(self, data: str | bytes) -> None:
        if self.on_message is not None:
            self.on_message(TransportMessage(data=data))

    def simulate_close(self, code: int, reason: str = "") -> None:
        if self.on_close is not None:
            self.on_close(TransportClosed(code=code, reason=reason))

    def simulate_error(self) -> None:
        if self.on_error is not None:
            self.on_error(TransportFailed(detail="boom"))


class FakeTransportFactory:
    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []

    def __call__(self, uri: str) -> FakeTransport:
        transport = FakeTransport(uri)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class CallbackRecorder:
    def __init__(self) -> None:
        self.started = 0
        self.partials = []
        self.finished = 0
        self.errors: list[tuple[str, str]] = []

    def attach(self, session: RecordTranscribe) -> None:
        session.set_on_started(self.on_started)
        session.set_on_partial_result(self.partials.append)
        session.set_on_finished(self.on_finished)
        session.set_on_error(self.on_error)

    def on_started(self) -> None:
        self.started += 1

    def on_finished(self) -> None:
        self.finished += 1

    def on_error(self, status: str, message: str) -> None:
        self.errors.append((status, message))


@pytest.fixture
def media_devices():
    return FakeMediaDevices()


@pytest.fixture
def transports():
    return FakeTransportFactory()


@pytest.fixture
def callbacks():
    return CallbackRecorder()


@pytest.fixture
def make_session(media_devices, transports, callbacks):
    created: list[RecordTranscribe] = []

    def factory(api_key: str | None = "test-key", media=None, **kwargs) -> RecordTranscribe:
        session = RecordTranscribe(
            media_devices=media or media_devices,
            transport_factory=transports,
            recorder_factory=FakeRecorder,
            **kwargs,
        )
        if api_key is not None:
            session.set_api_key(api_key)
        if not created:
            callbacks.attach(session)
        created.append(session)
        return session

    yield factory

    for session in created:
        session.cancel()


@pytest.fixture
def session(make_session):
    return make_session()
