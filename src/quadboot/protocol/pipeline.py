"""
Pipelined flash programming.

Write commands are streamed ahead of their acknowledgments, keeping up to
``window`` chunks in flight so serial latency overlaps with the device's
flash programming time.

For ``n`` chunks and window ``w = min(n, max_window)`` the engine runs
``n + w`` steps. On step ``i`` it first collects the acknowledgment for
chunk ``i - w`` (when ``i >= w``) and then sends chunk ``i`` (when
``i < n``). Collecting first keeps the in-flight count at ``w`` or less.

A failed acknowledgment aborts the whole write. Chunks already sent stay
in an unknown state on the device; recovery is a full re-run.
"""

import logging
from collections import deque
from typing import Callable, Deque, Optional, Tuple

from .correlator import ResponseCorrelator
from .errors import DeviceStatusError
from .messages import (
    WRITE_CHUNK_SIZE,
    FlashStatus,
    build_write_data,
    flash_status_str,
)

logger = logging.getLogger(__name__)

MAX_WINDOW = 10

# progress(bytes_written, total_bytes, address)
WriteProgress = Callable[[int, int, int], None]


class PipelinedWriter:
    """Stream a byte range to flash with a bounded acknowledgment window."""

    def __init__(
        self,
        send: Callable[[bytes], None],
        correlator: ResponseCorrelator,
        chunk_size: int = WRITE_CHUNK_SIZE,
        max_window: int = MAX_WINDOW,
        ack_timeout: float = 1.0,
    ):
        if not 0 < chunk_size <= WRITE_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be 1..{WRITE_CHUNK_SIZE}")
        if max_window < 1:
            raise ValueError("max_window must be >= 1")
        self._send = send
        self.correlator = correlator
        self.chunk_size = chunk_size
        self.max_window = max_window
        self.ack_timeout = ack_timeout
        self.pending: Deque[Tuple[int, int]] = deque()
        self.peak_in_flight = 0

    def _collect_ack(self) -> None:
        address, length = self.pending[0]
        response = self.correlator.await_response(timeout=self.ack_timeout)
        if response.status != FlashStatus.COMPLETE:
            raise DeviceStatusError(
                f"Can't write data at 0x{address:08x}: {flash_status_str(response.status)}",
                status=response.status,
                address=address,
            )
        self.pending.popleft()
        logger.debug(f"Write ack 0x{address:08x} ({length} bytes)")

    def write(
        self,
        address: int,
        data: bytes,
        progress: Optional[WriteProgress] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """
        Program ``data`` starting at ``address``.

        Cancellation is polled after each chunk is sent. Once requested no
        further chunks go out, but acknowledgments for chunks already in
        flight are still collected.

        Returns:
            True if every chunk was written, False if cancelled

        Raises:
            DeviceStatusError: If an acknowledgment reports a failure
            TransportTimeout: If an acknowledgment does not arrive
        """
        total = len(data)
        chunks = [
            (address + offset, data[offset:offset + self.chunk_size])
            for offset in range(0, total, self.chunk_size)
        ]
        window = min(len(chunks), self.max_window)
        self.pending.clear()
        self.peak_in_flight = 0
        written = 0
        cancelled = False

        logger.debug(
            f"Writing {total} bytes at 0x{address:08x} in {len(chunks)} chunks (window {window})"
        )

        for i in range(len(chunks) + window):
            if (i >= window or cancelled) and self.pending:
                self._collect_ack()

            if i < len(chunks) and not cancelled:
                chunk_addr, chunk = chunks[i]
                self._send(build_write_data(chunk_addr, chunk).to_bytes())
                self.pending.append((chunk_addr, len(chunk)))
                self.peak_in_flight = max(self.peak_in_flight, len(self.pending))
                written += len(chunk)

                if progress:
                    progress(written, total, chunk_addr)
                if is_cancelled and is_cancelled():
                    logger.info(f"Write cancelled after 0x{chunk_addr:08x}, draining {len(self.pending)} acks")
                    cancelled = True

            if cancelled and not self.pending:
                break

        return not cancelled
