from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE_PATH = Path.home() / ".config" / "voice-transcribe" / "env"


class TranscribeConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VOICE_TRANSCRIBE_",
        env_file=ENV_FILE_PATH,
        extra="ignore",
    )

    api_key: str = ""
    api_key_file: str = ""
    websocket_uri: str = "wss://api.soniox.com/transcribe-websocket"

    include_nonfinal: bool = True
    enable_endpoint_detection: bool = False
    speech_context: dict[str, Any] = {}
    enable_streaming_speaker_diarization: bool = False
    enable_global_speaker_diarization: bool = False
    min_num_speakers: int = 0
    max_num_speakers: int = 0
    enable_speaker_identification: bool = False
    cand_speaker_names: list[str] = []
    enable_profanity_filter: bool = False
    content_moderation_phrases: list[str] = []
    enable_dictation: bool = False
    model: str = ""

    capture_device: str = ""
    block_size: int = 2048
    time_slice_ms: int = 120
    max_output_size: int = 60000
    remove_leading_silence: bool = False
    playback: bool = False

    log_file: str = ""

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def resolve_api_key(self) -> str:
        return self.api_key or self.read_secret(self.api_key_file)
