import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any

import janus
import numpy as np

from voice_transcribe.domain.frame_encoder import PcmFrameEncoder

logger = logging.getLogger(__name__)

ReplyHandler = Callable[[str, Any], None]


class EncoderWorker:
    """Runs a PcmFrameEncoder on its own thread.

    Commands go in through one janus queue and replies come back through
    another, so the encoder never shares state with the caller. Replies are
    delivered on the event loop that created the worker.

    Commands:
        ("encode", samples, remove_leading_silence)
        ("dump", max_output_size, remove_leading_silence)
        ("end",)

    Replies:
        ("data", frame) for each dumped frame
        ("end", None) once per "end" command
    """

    def __init__(self, on_reply: ReplyHandler | None = None) -> None:
        self.on_reply = on_reply
        self._commands: janus.Queue[tuple] = janus.Queue()
        self._replies: janus.Queue[tuple[str, Any]] = janus.Queue()
        self._terminated = False
        self._thread = threading.Thread(target=self._run, name="pcm-encoder", daemon=True)
        self._thread.start()
        self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    @property
    def terminated(self) -> bool:
        return self._terminated

    def post(self, command: tuple) -> None:
        """Queue a command. Safe to call from any thread."""
        if self._terminated:
            return
        try:
            self._commands.sync_q.put_nowait(command)
        except janus.SyncQueueShutDown:
            pass

    def encode(self, samples: np.ndarray, remove_leading_silence: bool) -> None:
        self.post(("encode", np.array(samples, dtype=np.float32, copy=True), remove_leading_silence))

    def dump(self, max_output_size: int, remove_leading_silence: bool) -> None:
        self.post(("dump", max_output_size, remove_leading_silence))

    def end(self) -> None:
        self.post(("end",))

    def terminate(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        self.on_reply = None
        self._commands.close()
        self._replies.close()
        self._pump_task.cancel()
        logger.debug("Encoder worker terminated")

    def _run(self) -> None:
        encoder = PcmFrameEncoder()
        while True:
            try:
                command = self._commands.sync_q.get()
                self._execute(encoder, command)
            except (janus.SyncQueueShutDown, RuntimeError):
                break

    def _execute(self, encoder: PcmFrameEncoder, command: tuple) -> None:
        name = command[0]
        if name == "encode":
            encoder.encode(command[1], command[2])
        elif name == "dump":
            for frame in encoder.dump(command[1], command[2]):
                self._replies.sync_q.put(("data", frame))
        elif name == "end":
            self._replies.sync_q.put(("end", None))
            encoder.end()
        else:
            logger.warning("Unknown encoder command: %s", name)

    async def _pump(self) -> None:
        while True:
            try:
                reply = await self._replies.async_q.get()
            except janus.AsyncQueueShutDown:
                break
            handler = self.on_reply
            if handler is None:
                continue
            try:
                handler(*reply)
            except Exception:
                logger.exception("Encoder reply handler failed (%s)", reply[0])
