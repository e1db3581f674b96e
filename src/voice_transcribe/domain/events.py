from dataclasses import dataclass, field
from time import time


@dataclass(frozen=True)
class DomainEvent:
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True)
class FrameEncoded(DomainEvent):
    data: bytes = b""


@dataclass(frozen=True)
class RecordingEnded(DomainEvent):
    pass


@dataclass(frozen=True)
class TransportOpened(DomainEvent):
    pass


@dataclass(frozen=True)
class TransportMessage(DomainEvent):
    data: str | bytes = ""


@dataclass(frozen=True)
class TransportClosed(DomainEvent):
    code: int = 1005
    reason: str = ""


@dataclass(frozen=True)
class TransportFailed(DomainEvent):
    detail: str = ""
