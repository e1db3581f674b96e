import numpy as np

PCM_MIN = -32768
PCM_MAX = 32767
PCM_SCALE = 32768.0


def encode_pcm_s16le(samples: np.ndarray) -> np.ndarray:
    """Scale float samples in [-1, 1] to little-endian int16, clamping out-of-range values."""
    scaled = np.round(np.asarray(samples, dtype=np.float64) * PCM_SCALE)
    return np.clip(scaled, PCM_MIN, PCM_MAX).astype("<i2")


class PcmFrameEncoder:
    """Buffers encoded sample blocks and groups them into size-bounded frames.

    Chunks are never split: a frame holds one or more whole chunks, and a
    single chunk larger than ``max_output_size`` becomes a frame on its own.
    """

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._leading_zeros = True

    @property
    def buffered_bytes(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)

    @property
    def in_leading_silence(self) -> bool:
        return self._leading_zeros

    def encode(self, samples: np.ndarray, remove_leading_silence: bool = False) -> None:
        pcm = encode_pcm_s16le(samples)
        if remove_leading_silence and self._leading_zeros:
            nonzero = np.flatnonzero(pcm)
            if nonzero.size == 0:
                return
            pcm = pcm[nonzero[0]:]
            self._leading_zeros = False
        self._chunks.append(pcm.tobytes())

    def dump(self, max_output_size: int, remove_leading_silence: bool = False) -> list[bytes]:
        frames: list[bytes] = []
        group: list[bytes] = []
        length = 0

        for chunk in self._chunks:
            if group and length + len(chunk) > max_output_size:
                frames.append(b"".join(group))
                group = []
                length = 0
            group.append(chunk)
            length += len(chunk)

        if group:
            frames.append(b"".join(group))

        # Heartbeat while the stream is still all zeros.
        if not frames and remove_leading_silence and self._leading_zeros:
            frames.append(b"")

        self._chunks = []
        return frames

    def end(self) -> None:
        self._chunks = []
        self._leading_zeros = True
