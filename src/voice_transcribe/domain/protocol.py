"""Wire formats exchanged with the transcription service.

The client sends one JSON handshake, then binary PCM frames, then a single
empty message marking the end of audio. The service answers with JSON
responses and finally closes the connection with a reason of the form
``<tag> message``.
"""

import json
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from voice_transcribe.domain.result import Result, Speaker, Word

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
EOF_TAG = "eof"
END_OF_AUDIO = ""

STATUS_MESSAGE_PATTERN = re.compile(r"^<([a-zA-Z0-9_\-]+)> *(([^ ]|$).*)$")


class ProtocolError(Exception):
    pass


@dataclass
class TranscriptionOptions:
    include_nonfinal: bool = False
    enable_endpoint_detection: bool = False
    speech_context: dict[str, Any] = field(default_factory=dict)
    enable_streaming_speaker_diarization: bool = False
    enable_global_speaker_diarization: bool = False
    min_num_speakers: int = 0
    max_num_speakers: int = 0
    enable_speaker_identification: bool = False
    cand_speaker_names: list[str] = field(default_factory=list)
    enable_profanity_filter: bool = False
    content_moderation_phrases: list[str] = field(default_factory=list)
    enable_dictation: bool = False
    model: str = ""


def build_handshake(api_key: str, sample_rate: float, options: TranscriptionOptions) -> dict[str, Any]:
    request: dict[str, Any] = {
        "api_key": api_key,
        "sample_rate_hertz": round(sample_rate),
        "include_nonfinal": options.include_nonfinal,
        "speech_context": options.speech_context,
    }
    if options.enable_endpoint_detection:
        request["enable_endpoint_detection"] = True
    if options.enable_streaming_speaker_diarization:
        request["enable_streaming_speaker_diarization"] = True
    if options.enable_global_speaker_diarization:
        request["enable_global_speaker_diarization"] = True
    if options.min_num_speakers != 0:
        request["min_num_speakers"] = options.min_num_speakers
    if options.max_num_speakers != 0:
        request["max_num_speakers"] = options.max_num_speakers
    if options.enable_speaker_identification:
        request["enable_speaker_identification"] = True
        request["cand_speaker_names"] = list(options.cand_speaker_names)
    if options.enable_profanity_filter:
        request["enable_profanity_filter"] = True
    if options.content_moderation_phrases:
        request["content_moderation_phrases"] = list(options.content_moderation_phrases)
    if options.enable_dictation:
        request["enable_dictation"] = True
    if options.model:
        request["model"] = options.model
    return request


class WordPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    t: str
    s: int
    d: int
    spk: int = 0

    def to_word(self, is_final: bool) -> Word:
        return Word(text=self.t, start_ms=self.s, duration_ms=self.d, speaker=self.spk, is_final=is_final)


class SpeakerPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    spk: int
    nm: str


class ResponsePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    fw: list[WordPayload]
    nfw: list[WordPayload]
    fpt: int
    tpt: int
    spks: list[SpeakerPayload] | None = None


def result_from_response(payload: ResponsePayload) -> Result:
    words = [w.to_word(is_final=True) for w in payload.fw]
    words.extend(w.to_word(is_final=False) for w in payload.nfw)
    speakers = {s.spk: Speaker(speaker=s.spk, name=s.nm) for s in payload.spks or []}
    return Result(
        words=words,
        final_proc_time_ms=payload.fpt,
        total_proc_time_ms=payload.tpt,
        speakers=MappingProxyType(speakers),
    )


def parse_response(message: str | bytes) -> Result:
    try:
        payload = ResponsePayload.model_validate_json(message)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed response: {exc.error_count()} validation error(s)") from exc
    return result_from_response(payload)


def encode_handshake(request: dict[str, Any]) -> str:
    return json.dumps(request)


def parse_close_reason(reason: str) -> tuple[str, str] | None:
    """Split ``<tag> message`` into (tag, message), or None if it does not match."""
    match = STATUS_MESSAGE_PATTERN.match(reason)
    if match is None:
        return None
    return match.group(1), match.group(2)
