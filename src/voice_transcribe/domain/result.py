from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class Word:
    text: str
    start_ms: int
    duration_ms: int
    speaker: int
    is_final: bool


@dataclass(frozen=True)
class Speaker:
    speaker: int
    name: str


def _no_speakers() -> Mapping[int, Speaker]:
    return MappingProxyType({})


@dataclass
class Result:
    """Running transcription result.

    ``words`` holds every final word received so far, followed by the
    non-final words of the latest update.
    """

    words: list[Word] = field(default_factory=list)
    final_proc_time_ms: int = 0
    total_proc_time_ms: int = 0
    speakers: Mapping[int, Speaker] = field(default_factory=_no_speakers)

    @property
    def final_words(self) -> list[Word]:
        return [word for word in self.words if word.is_final]

    @property
    def text(self) -> str:
        return "".join(word.text for word in self.words)

    def copy(self) -> "Result":
        return Result(
            words=list(self.words),
            final_proc_time_ms=self.final_proc_time_ms,
            total_proc_time_ms=self.total_proc_time_ms,
            speakers=self.speakers,
        )


def merge(current: Result, incoming: Result) -> None:
    """Apply an incremental update to ``current`` in place.

    Trailing non-final words are replaced, final words are kept. Metrics and
    speakers are taken from ``incoming`` as they are.
    """
    words = current.words
    while words and not words[-1].is_final:
        words.pop()

    words.extend(word for word in incoming.words if word.is_final)
    words.extend(word for word in incoming.words if not word.is_final)

    current.final_proc_time_ms = incoming.final_proc_time_ms
    current.total_proc_time_ms = incoming.total_proc_time_ms
    current.speakers = incoming.speakers
