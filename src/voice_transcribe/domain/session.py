import asyncio
import functools
import logging
import threading
from collections.abc import Callable
from typing import Any

from voice_transcribe.domain.events import (
    FrameEncoded,
    RecordingEnded,
    TransportClosed,
    TransportFailed,
    TransportMessage,
    TransportOpened,
)
from voice_transcribe.domain.protocol import (
    END_OF_AUDIO,
    EOF_TAG,
    NORMAL_CLOSURE,
    ProtocolError,
    TranscriptionOptions,
    build_handshake,
    encode_handshake,
    parse_close_reason,
    parse_response,
)
from voice_transcribe.domain.recorder import AudioRecorder
from voice_transcribe.domain.result import Result, merge
from voice_transcribe.domain.state import (
    RESPONSE_STATES,
    USER_STATES,
    WEBSOCKET_STATES,
    SessionState,
    UserState,
    is_inactive,
    validate_transition,
)
from voice_transcribe.ports.audio import AudioStreamPort, MediaAccessError, MediaDevicesPort
from voice_transcribe.ports.transport import TransportFactory, TransportPort

logger = logging.getLogger(__name__)

DEFAULT_WEBSOCKET_URI = "wss://api.soniox.com/transcribe-websocket"
RECORDER_TIME_SLICE_MS = 120
MAX_OUTPUT_SIZE_BYTES = 60000
MAX_PENDING_FRAMES = 100


class UsageError(Exception):
    pass


class NotSupportedError(UsageError):
    pass


class ActiveSessionGuard:
    """Process-wide record of the one session allowed to run at a time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: object | None = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._owner is not None

    def claim(self, session: object) -> bool:
        with self._lock:
            if self._owner is not None:
                return False
            self._owner = session
            return True

    def release(self, session: object) -> None:
        with self._lock:
            if self._owner is session:
                self._owner = None


active_session_guard = ActiveSessionGuard()


@functools.cache
def _probe_default_backend() -> bool:
    try:
        from voice_transcribe.adapters.sounddevice_audio import capture_supported
    except OSError:
        # PortAudio shared library is missing.
        return False
    return capture_supported()


class RecordTranscribe:
    """One recording and transcription attempt.

    Configure with the setters, then call ``start()`` from inside a running
    event loop. Progress is reported through the registered callbacks; all of
    them run on the event loop thread. A session is single-use: once it has
    finished, failed or been canceled, create a new one.
    """

    def __init__(
        self,
        media_devices: MediaDevicesPort | None = None,
        transport_factory: TransportFactory | None = None,
        recorder_factory: Callable[[AudioStreamPort], AudioRecorder] = AudioRecorder,
        time_slice_ms: int = RECORDER_TIME_SLICE_MS,
        max_output_size: int = MAX_OUTPUT_SIZE_BYTES,
        playback: bool = False,
        remove_leading_silence: bool = False,
    ) -> None:
        if media_devices is None:
            if not RecordTranscribe.is_supported():
                raise NotSupportedError("Audio capture is not supported on this system.")
            from voice_transcribe.adapters.sounddevice_audio import SounddeviceMediaDevices

            media_devices = SounddeviceMediaDevices()
        if transport_factory is None:
            from voice_transcribe.adapters.websocket_transport import WebSocketTransport

            transport_factory = WebSocketTransport

        self._media_devices = media_devices
        self._transport_factory = transport_factory
        self._recorder_factory = recorder_factory
        self._time_slice_ms = time_slice_ms
        self._max_output_size = max_output_size
        self._playback = playback
        self._remove_leading_silence = remove_leading_silence

        self._state = SessionState.INIT
        self._api_key: str | None = None
        self._options = TranscriptionOptions()
        self._websocket_uri = DEFAULT_WEBSOCKET_URI

        self._on_started: Callable[[], None] | None = None
        self._on_partial_result: Callable[[Result], None] | None = None
        self._on_finished: Callable[[], None] | None = None
        self._on_error: Callable[[str, str], None] | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._media_task: asyncio.Task | None = None
        self._stream: AudioStreamPort | None = None
        self._recorder: AudioRecorder | None = None
        self._transport: TransportPort | None = None
        self._pending_frames: list[bytes] | None = None
        self._result = Result()

    @staticmethod
    def is_supported() -> bool:
        return _probe_default_backend()

    @property
    def state(self) -> SessionState:
        return self._state

    # -- configuration ---------------------------------------------------

    def _ensure_init(self, method: str) -> None:
        if self._state is not SessionState.INIT:
            raise UsageError(f"{method}() may only be called before start()")

    def set_api_key(self, api_key: str) -> None:
        self._ensure_init("set_api_key")
        self._api_key = api_key

    def set_include_nonfinal(self, include_nonfinal: bool) -> None:
        self._ensure_init("set_include_nonfinal")
        self._options.include_nonfinal = include_nonfinal

    def set_enable_endpoint_detection(self, enable: bool) -> None:
        self._ensure_init("set_enable_endpoint_detection")
        self._options.enable_endpoint_detection = enable

    def set_speech_context(self, speech_context: dict[str, Any]) -> None:
        self._ensure_init("set_speech_context")
        self._options.speech_context = speech_context

    def set_enable_streaming_speaker_diarization(self, enable: bool) -> None:
        self._ensure_init("set_enable_streaming_speaker_diarization")
        self._options.enable_streaming_speaker_diarization = enable

    def set_enable_global_speaker_diarization(self, enable: bool) -> None:
        self._ensure_init("set_enable_global_speaker_diarization")
        self._options.enable_global_speaker_diarization = enable

    def set_min_num_speakers(self, value: int) -> None:
        self._ensure_init("set_min_num_speakers")
        self._options.min_num_speakers = value

    def set_max_num_speakers(self, value: int) -> None:
        self._ensure_init("set_max_num_speakers")
        self._options.max_num_speakers = value

    def set_enable_speaker_identification(self, enable: bool) -> None:
        self._ensure_init("set_enable_speaker_identification")
        self._options.enable_speaker_identification = enable

    def set_cand_speaker_names(self, names: list[str]) -> None:
        self._ensure_init("set_cand_speaker_names")
        self._options.cand_speaker_names = list(names)

    def set_enable_profanity_filter(self, enable: bool) -> None:
        self._ensure_init("set_enable_profanity_filter")
        self._options.enable_profanity_filter = enable

    def set_content_moderation_phrases(self, phrases: list[str]) -> None:
        self._ensure_init("set_content_moderation_phrases")
        self._options.content_moderation_phrases = list(phrases)

    def set_model(self, model: str) -> None:
        self._ensure_init("set_model")
        self._options.model = model

    def set_enable_dictation(self, enable: bool) -> None:
        self._ensure_init("set_enable_dictation")
        self._options.enable_dictation = enable

    def set_websocket_uri(self, uri: str) -> None:
        self._ensure_init("set_websocket_uri")
        self._websocket_uri = uri

    def set_on_started(self, callback: Callable[[], None] | None) -> None:
        self._ensure_init("set_on_started")
        self._on_started = callback

    def set_on_partial_result(self, callback: Callable[[Result], None] | None) -> None:
        self._ensure_init("set_on_partial_result")
        self._on_partial_result = callback

    def set_on_finished(self, callback: Callable[[], None] | None) -> None:
        self._ensure_init("set_on_finished")
        self._on_finished = callback

    def set_on_error(self, callback: Callable[[str, str], None] | None) -> None:
        self._ensure_init("set_on_error")
        self._on_error = callback

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        if self._state is not SessionState.INIT:
            raise UsageError("start() may only be called once")
        if active_session_guard.active:
            raise UsageError("only one RecordTranscribe may be active at a time")
        if self._api_key is None:
            raise UsageError("API key not set, call set_api_key first")

        loop = asyncio.get_running_loop()
        if not active_session_guard.claim(self):
            raise UsageError("only one RecordTranscribe may be active at a time")

        self._loop = loop
        self._media_task = loop.create_task(self._request_media())
        self._transition_to(SessionState.REQUESTING_MEDIA)

    def stop(self) -> None:
        if self._state in (SessionState.REQUESTING_MEDIA, SessionState.OPENING_WEBSOCKET):
            self._close_resources()
            self._loop.call_soon(self._complete_finishing_early)
            self._transition_to(SessionState.FINISHING_EARLY)
        elif self._state is SessionState.RUNNING:
            self._recorder.stop()
            self._transition_to(SessionState.FINISHING_RECORDING)

    def cancel(self) -> None:
        if is_inactive(self._state):
            return
        self._close_resources()
        self._transition_to(SessionState.CANCELED)
        active_session_guard.release(self)

    def get_result(self) -> Result:
        return self._result

    def get_result_copy(self) -> Result:
        return self._result.copy()

    def get_state(self) -> UserState:
        return USER_STATES[self._state]

    def _transition_to(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.value, target.value)
        self._state = target

    # -- capture ---------------------------------------------------------

    async def _request_media(self) -> None:
        try:
            stream = await self._media_devices.get_user_media()
        except MediaAccessError as exc:
            self._on_get_user_media_error(exc)
            return
        except Exception as exc:
            logger.exception("Capture request raised")
            self._on_get_user_media_error(exc)
            return
        self._on_get_user_media_success(stream)

    def _on_get_user_media_success(self, stream: AudioStreamPort) -> None:
        if self._state is not SessionState.REQUESTING_MEDIA:
            logger.debug("Capture granted in state %s, releasing it", self._state.value)
            stream.close()
            return

        self._stream = stream
        self._recorder = self._recorder_factory(stream)
        self._recorder.on_data = self._on_recorder_data
        self._recorder.on_end = self._on_recorder_end
        try:
            self._recorder.start(
                self._time_slice_ms,
                self._max_output_size,
                playback=self._playback,
                remove_leading_silence=self._remove_leading_silence,
            )
        except MediaAccessError as exc:
            self._on_get_user_media_error(exc)
            return

        self._transport = self._transport_factory(self._websocket_uri)
        self._transport.on_open = self._on_transport_open
        self._transport.on_message = self._on_transport_message
        self._transport.on_close = self._on_transport_close
        self._transport.on_error = self._on_transport_error
        self._pending_frames = []
        self._transition_to(SessionState.OPENING_WEBSOCKET)

    def _on_get_user_media_error(self, exc: Exception) -> None:
        if self._state is not SessionState.REQUESTING_MEDIA:
            return
        logger.warning("Capture request failed: %s", exc)
        self._handle_error("get_user_media_failed", "Failed to get user media.")

    def _on_recorder_data(self, event: FrameEncoded) -> None:
        if self._state is SessionState.OPENING_WEBSOCKET:
            if len(self._pending_frames) < MAX_PENDING_FRAMES:
                self._pending_frames.append(event.data)
            else:
                logger.error("Pending frame queue full, dropping frame (%d bytes)", len(event.data))
        elif self._state in (SessionState.RUNNING, SessionState.FINISHING_RECORDING):
            self._transport.send(event.data)

    def _on_recorder_end(self, event: RecordingEnded) -> None:
        if self._state is not SessionState.FINISHING_RECORDING:
            return
        self._close_media()
        self._transport.send(END_OF_AUDIO)
        self._transition_to(SessionState.FINISHING_PROCESSING)

    # -- transport -------------------------------------------------------

    def _on_transport_open(self, event: TransportOpened) -> None:
        if self._state is not SessionState.OPENING_WEBSOCKET:
            return

        request = build_handshake(self._api_key, self._recorder.sample_rate, self._options)
        self._transport.send(encode_handshake(request))
        pending, self._pending_frames = self._pending_frames, None
        for frame in pending:
            self._transport.send(frame)
        logger.debug("Handshake sent, flushed %d pending frame(s)", len(pending))

        self._transition_to(SessionState.RUNNING)
        if self._on_started is not None:
            self._on_started()

    def _on_transport_message(self, event: TransportMessage) -> None:
        if self._state not in RESPONSE_STATES:
            return
        try:
            update = parse_response(event.data)
        except ProtocolError as exc:
            self._handle_error("other_asr_error", str(exc))
            return
        merge(self._result, update)
        if self._on_partial_result is not None:
            self._on_partial_result(update)

    def _on_transport_close(self, event: TransportClosed) -> None:
        if self._state not in WEBSOCKET_STATES:
            return

        if event.code == NORMAL_CLOSURE:
            parsed = parse_close_reason(event.reason)
            if parsed is None:
                status, message = "other_asr_error", event.reason
            else:
                status, message = parsed
                if status == EOF_TAG:
                    if self._state is SessionState.FINISHING_PROCESSING:
                        self._handle_finished()
                        return
                    status, message = "other_asr_error", "Unexpected EOF received."
        else:
            status = "websocket_closed"
            message = f"WebSocket closed: code={event.code}, reason={event.reason}"
        self._handle_error(status, message)

    def _on_transport_error(self, event: TransportFailed) -> None:
        if self._state not in WEBSOCKET_STATES:
            return
        if event.detail:
            logger.warning("Transport error: %s", event.detail)
        self._handle_error("websocket_error", "WebSocket error occurred.")

    # -- teardown --------------------------------------------------------

    def _complete_finishing_early(self) -> None:
        if self._state is not SessionState.FINISHING_EARLY:
            return
        self._handle_finished()

    def _close_resources(self) -> None:
        self._close_transport()
        self._close_media()
        self._pending_frames = None

    def _close_transport(self) -> None:
        if self._transport is None:
            return
        transport, self._transport = self._transport, None
        transport.on_open = None
        transport.on_message = None
        transport.on_close = None
        transport.on_error = None
        transport.close()

    def _close_media(self) -> None:
        if self._recorder is not None:
            recorder, self._recorder = self._recorder, None
            recorder.on_data = None
            recorder.on_end = None
            recorder.stop()
            recorder.terminate_worker()
        if self._stream is not None:
            stream, self._stream = self._stream, None
            stream.close()

    def _handle_error(self, status: str, message: str) -> None:
        self._close_resources()
        self._transition_to(SessionState.ERROR)
        active_session_guard.release(self)
        logger.error("Session failed (%s): %s", status, message)
        if self._on_error is not None:
            self._on_error(status, message)

    def _handle_finished(self) -> None:
        self._close_resources()
        self._transition_to(SessionState.FINISHED)
        active_session_guard.release(self)
        logger.info("Session finished (%d words)", len(self._result.words))
        if self._on_finished is not None:
            self._on_finished()
