"""
Response correlation for the boot protocol.

The transport pushes decoded frames onto a FIFO from its reader thread.
The control thread drains that FIFO here, waiting for the one reply the
current command expects. Frames with other IDs are kept aside rather than
dropped so interleaved traffic (shell output, telemetry) is not lost.
"""

import logging
import queue
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from .errors import TransportTimeout
from .framing import Frame
from .messages import CommandResponse, MessageId

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.01
HELD_FRAME_LIMIT = 4096


class ResponseCorrelator:
    """
    Match inbound frames to the command awaiting a reply.

    Example:
        correlator = ResponseCorrelator(transport.inbox)
        transport.send(encode_frame(...))
        response = correlator.await_response(timeout=1.0)
    """

    def __init__(
        self,
        inbox: "queue.Queue[Frame]",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        idle: Optional[Callable[[], None]] = None,
        held_limit: int = HELD_FRAME_LIMIT,
    ):
        """
        Args:
            inbox: Queue the transport fills with decoded frames
            poll_interval: Wait step between inbox checks, in seconds
            idle: Called once per wait step so a caller can stay responsive
            held_limit: Maximum unrelated frames kept aside
        """
        self.inbox = inbox
        self.poll_interval = poll_interval
        self.idle = idle
        self._held: Deque[Frame] = deque(maxlen=held_limit)

    def _take_held(self, expected_id: int) -> Optional[Frame]:
        for i, frame in enumerate(self._held):
            if frame.id == expected_id:
                del self._held[i]
                return frame
        return None

    def await_frame(self, expected_id: int, timeout: float) -> Frame:
        """
        Wait for the next frame with ``expected_id``.

        Raises:
            TransportTimeout: If nothing matching arrives in ``timeout`` seconds
        """
        frame = self._take_held(expected_id)
        if frame is not None:
            return frame

        deadline = time.monotonic() + timeout
        while True:
            try:
                frame = self.inbox.get(timeout=self.poll_interval)
            except queue.Empty:
                frame = None

            if frame is not None:
                if frame.id == expected_id:
                    return frame
                logger.debug(f"Holding unrelated frame {frame!r}")
                self._held.append(frame)

            if self.idle:
                self.idle()
            if time.monotonic() >= deadline:
                raise TransportTimeout(
                    f"Time out waiting for message 0x{expected_id:02X}",
                    expected_id=expected_id,
                )

    def await_response(
        self,
        expected_id: int = MessageId.BOOT_RESPONSE,
        timeout: float = 1.0,
    ) -> CommandResponse:
        """Wait for a response frame and unpack it."""
        return CommandResponse.from_frame(self.await_frame(expected_id, timeout))

    def discard(self, expected_id: int) -> int:
        """
        Drop queued frames with ``expected_id`` without waiting.

        Used before retrying a command whose earlier reply may still turn
        up late. Frames with other IDs are held as usual.

        Returns:
            Number of frames dropped
        """
        dropped = 0
        kept = [frame for frame in self._held if frame.id != expected_id]
        dropped += len(self._held) - len(kept)
        self._held.clear()
        self._held.extend(kept)

        while True:
            try:
                frame = self.inbox.get_nowait()
            except queue.Empty:
                break
            if frame.id == expected_id:
                dropped += 1
            else:
                self._held.append(frame)

        if dropped:
            logger.debug(f"Discarded {dropped} stale frame(s) 0x{expected_id:02X}")
        return dropped

    def held_frames(self) -> List[Frame]:
        """Unrelated frames received while waiting, oldest first."""
        return list(self._held)

    def pop_held(self) -> List[Frame]:
        """Return and forget the unrelated frames."""
        frames = list(self._held)
        self._held.clear()
        return frames
