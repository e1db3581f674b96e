import logging

from voice_transcribe.config import TranscribeConfig
from voice_transcribe.domain.session import RecordTranscribe
from voice_transcribe.ports.audio import MediaDevicesPort
from voice_transcribe.ports.transport import TransportFactory

logger = logging.getLogger(__name__)


def create_media_devices(config: TranscribeConfig) -> MediaDevicesPort:
    from voice_transcribe.adapters.sounddevice_audio import SounddeviceMediaDevices

    return SounddeviceMediaDevices(
        device=config.capture_device or None,
        block_size=config.block_size,
    )


def create_session(
    config: TranscribeConfig,
    media_devices: MediaDevicesPort | None = None,
    transport_factory: TransportFactory | None = None,
) -> RecordTranscribe:
    if media_devices is None:
        media_devices = create_media_devices(config)

    session = RecordTranscribe(
        media_devices=media_devices,
        transport_factory=transport_factory,
        time_slice_ms=config.time_slice_ms,
        max_output_size=config.max_output_size,
        playback=config.playback,
        remove_leading_silence=config.remove_leading_silence,
    )

    api_key = config.resolve_api_key()
    if api_key:
        session.set_api_key(api_key)
    else:
        logger.warning("No API key configured (api_key_file=%s)", config.api_key_file or "not set")

    session.set_websocket_uri(config.websocket_uri)
    session.set_include_nonfinal(config.include_nonfinal)
    session.set_enable_endpoint_detection(config.enable_endpoint_detection)
    session.set_speech_context(config.speech_context)
    session.set_enable_streaming_speaker_diarization(config.enable_streaming_speaker_diarization)
    session.set_enable_global_speaker_diarization(config.enable_global_speaker_diarization)
    session.set_min_num_speakers(config.min_num_speakers)
    session.set_max_num_speakers(config.max_num_speakers)
    session.set_enable_speaker_identification(config.enable_speaker_identification)
    session.set_cand_speaker_names(config.cand_speaker_names)
    session.set_enable_profanity_filter(config.enable_profanity_filter)
    session.set_content_moderation_phrases(config.content_moderation_phrases)
    session.set_enable_dictation(config.enable_dictation)
    session.set_model(config.model)

    return session
