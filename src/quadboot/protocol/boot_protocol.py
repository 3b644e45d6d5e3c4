"""
Boot protocol commands and firmware update state machine.

Update sequence:
    1. Enter bootloader (retried, the device may still be resetting)
    2. Erase the configured sector range
    3. Write the image except the first 8 bytes (pipelined)
    4. Verify the written range by CRC-32
    5. Write the first 8 bytes (reset vector)
    6. Exit bootloader and start the application

The reset vector goes last so an update interrupted at any earlier point
leaves the device booting into the bootloader, never into a half written
application.

All protocol state lives on the calling thread. The transport only feeds
the inbox queue drained by the correlator.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .config import BootConfig
from .correlator import ResponseCorrelator
from .crc import crc32
from .errors import (
    BootloaderError,
    DeviceStatusError,
    EntryError,
    IntegrityMismatch,
    TransportTimeout,
)
from .framing import Frame
from .messages import (
    BOOT_OK,
    CommandResponse,
    FlashStatus,
    MessageId,
    build_enter,
    build_erase_sector,
    build_exit,
    build_shell_reset,
    build_verify,
    flash_status_str,
)
from .pipeline import PipelinedWriter, WriteProgress

logger = logging.getLogger(__name__)

# report(percent, text)
ReportFn = Callable[[int, str], None]


class BootPhase(Enum):
    IDLE = "idle"
    ENTERING_BOOTLOADER = "entering_bootloader"
    ERASING = "erasing"
    WRITING = "writing"
    VERIFYING = "verifying"
    WRITING_VECTOR_TABLE = "writing_vector_table"
    EXITING = "exiting"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UpdateCancelled(Exception):
    """The caller asked the update to stop. Not a failure."""


class BootProtocol:
    """
    Low-level bootloader commands over a frame transport.

    The transport must provide ``send(data: bytes)`` for encoded frames and
    an ``inbox`` queue of decoded ``Frame`` objects.

    Example:
        proto = BootProtocol(transport, config)
        proto.enter()
        proto.erase_sector(4)
        proto.write_data(0x08010008, data)
        proto.verify_data(0x08010008, data)
        proto.exit()
    """

    def __init__(
        self,
        transport,
        config: Optional[BootConfig] = None,
        idle: Optional[Callable[[], None]] = None,
    ):
        self.transport = transport
        self.config = config or BootConfig()
        self.correlator = ResponseCorrelator(
            transport.inbox,
            poll_interval=self.config.poll_interval,
            idle=idle,
        )
        self.writer = PipelinedWriter(
            self.send,
            self.correlator,
            chunk_size=self.config.chunk_size,
            max_window=self.config.window,
            ack_timeout=self.config.response_timeout,
        )

    def send(self, data: bytes) -> None:
        self.transport.send(data)

    def send_frame(self, frame: Frame) -> None:
        self.send(frame.to_bytes())

    def _command(self, frame: Frame, timeout: float) -> CommandResponse:
        self.send_frame(frame)
        return self.correlator.await_response(timeout=timeout)

    def soft_reset(self) -> None:
        """Ask a running application to reboot into the bootloader."""
        self.send_frame(build_shell_reset())

    def enter(self) -> None:
        """
        Send one enter-bootloader command.

        Raises:
            TransportTimeout: No reply
            EntryError: Device replied with a failure flag
        """
        if self.config.soft_reset:
            self.soft_reset()
        # Late reply from a timed out attempt
        self.correlator.discard(MessageId.BOOT_RESPONSE)
        res = self._command(build_enter(self.config.magic), self.config.entry_timeout)
        if res.status != BOOT_OK:
            raise EntryError(f"Can't enter bootloader: {res.status}")

    def exit(self) -> None:
        res = self._command(build_exit(), self.config.response_timeout)
        if res.status != BOOT_OK:
            raise EntryError(f"Can't exit bootloader: {res.status}")

    def erase_sector(self, sector: int) -> None:
        res = self._command(build_erase_sector(sector), self.config.erase_timeout)
        if res.status != FlashStatus.COMPLETE:
            raise DeviceStatusError(
                f"Can't erase sector {sector}: {flash_status_str(res.status)}",
                status=res.status,
                sector=sector,
            )

    def write_data(
        self,
        address: int,
        data: bytes,
        progress: Optional[WriteProgress] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Pipelined write; False if cancelled part way."""
        return self.writer.write(address, data, progress, is_cancelled)

    def verify_data(self, address: int, data: bytes) -> int:
        """
        Have the device CRC the range and compare with the local image.

        Returns:
            The matching CRC-32

        Raises:
            IntegrityMismatch: If the values differ
        """
        res = self._command(build_verify(address, len(data)), self.config.response_timeout)
        remote_crc = res.value32
        local_crc = crc32(data)
        if remote_crc != local_crc:
            raise IntegrityMismatch(expected=local_crc, actual=remote_crc)
        logger.debug(f"Image CRC 0x{local_crc:08x} matches")
        return local_crc


@dataclass
class ProtocolSession:
    """
    Mutable state of one update run.

    Attributes:
        start_address: Flash address of the first image byte
        image_size: Total image bytes including the vector table
        phase: Current phase
        current_address: Address of the most recent write
        bytes_remaining: Bytes of the current write not yet sent
        pending_acks: Writes sent but not yet acknowledged (address, length)
        last_error: Error that ended the run, if any
        entry_attempts: Bootloader entry attempts made
        image_crc: CRC-32 confirmed by verification
        history: Phases entered, in order
        timings: Milliseconds spent per phase, plus "total"
    """
    start_address: int
    image_size: int
    phase: BootPhase = BootPhase.IDLE
    current_address: int = 0
    bytes_remaining: int = 0
    pending_acks: Deque[Tuple[int, int]] = field(default_factory=deque)
    last_error: Optional[BootloaderError] = None
    entry_attempts: int = 0
    image_crc: Optional[int] = None
    history: List[BootPhase] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def error_message(self) -> str:
        return str(self.last_error) if self.last_error else ""

    def advance(self, phase: BootPhase) -> None:
        logger.info(f"Phase {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.history.append(phase)

    def fail(self, error: BootloaderError) -> None:
        self.last_error = error
        self.advance(BootPhase.FAILED)


class UpdateStateMachine:
    """
    Drive one full firmware update through the boot protocol.

    Cancellation is cooperative: ``is_cancelled`` is polled between
    protocol steps (entry attempts, sector erases, write chunks) and never
    interrupts a command already sent.
    """

    def __init__(
        self,
        protocol: BootProtocol,
        report: Optional[ReportFn] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ):
        self.protocol = protocol
        self.config = protocol.config
        self._report_fn = report
        self._is_cancelled = is_cancelled
        self.session: Optional[ProtocolSession] = None

    def _report(self, percent: int, text: str) -> None:
        if self._report_fn:
            self._report_fn(percent, text)

    def _cancel_requested(self) -> bool:
        return bool(self._is_cancelled and self._is_cancelled())

    def _checkpoint(self) -> None:
        if self._cancel_requested():
            raise UpdateCancelled()

    def run(self, start_address: int, data: bytes) -> ProtocolSession:
        """
        Run the update to completion, failure or cancellation.

        Protocol errors do not propagate; they end the session in
        ``BootPhase.FAILED`` with ``last_error`` set.
        """
        if len(data) <= self.config.vector_table_size:
            raise ValueError(
                f"Image too small: {len(data)} bytes "
                f"(needs more than {self.config.vector_table_size})"
            )

        session = ProtocolSession(
            start_address=start_address,
            image_size=len(data),
            pending_acks=self.protocol.writer.pending,
        )
        self.session = session

        steps = (
            (BootPhase.ENTERING_BOOTLOADER, self._enter),
            (BootPhase.ERASING, self._erase),
            (BootPhase.WRITING, self._write_body),
            (BootPhase.VERIFYING, self._verify_body),
            (BootPhase.WRITING_VECTOR_TABLE, self._write_vector_table),
            (BootPhase.EXITING, self._exit),
        )

        t0 = time.monotonic()
        try:
            for phase, step in steps:
                self._checkpoint()
                session.advance(phase)
                started = time.monotonic()
                step(session, data)
                session.timings[phase.value] = (time.monotonic() - started) * 1000.0
        except UpdateCancelled:
            logger.warning(f"Update cancelled during {session.phase.value}")
            session.advance(BootPhase.CANCELLED)
        except BootloaderError as e:
            logger.error(f"Update failed during {session.phase.value}: {e}")
            session.fail(e)
        else:
            self._report(100, "Done.")
            session.advance(BootPhase.DONE)
        session.timings["total"] = (time.monotonic() - t0) * 1000.0
        return session

    def _enter(self, session: ProtocolSession, data: bytes) -> None:
        attempts = self.config.entry_attempts
        last_error: Optional[BootloaderError] = None

        for attempt in range(1, attempts + 1):
            session.entry_attempts = attempt
            self._report(min(attempt, 9), "Entering bootloader")
            try:
                self.protocol.enter()
                logger.info(f"Bootloader entered after {attempt} attempt(s)")
                return
            except (TransportTimeout, EntryError) as e:
                last_error = e
                logger.debug(f"Entry attempt {attempt}/{attempts} failed: {e}")
            self._checkpoint()

        raise EntryError(
            f"Can't enter boot loader after {attempts} attempts: {last_error}"
        )

    def _erase(self, session: ProtocolSession, data: bytes) -> None:
        sectors = self.config.sectors
        for i, sector in enumerate(sectors):
            self._report(10 + 10 * i // len(sectors), f"Erasing sector {sector}...")
            self.protocol.erase_sector(sector)
            self._checkpoint()

    def _write_body(self, session: ProtocolSession, data: bytes) -> None:
        skip = self.config.vector_table_size
        address = session.start_address + skip
        body = data[skip:]
        session.current_address = address
        session.bytes_remaining = len(body)

        def on_progress(written: int, total: int, chunk_addr: int) -> None:
            session.current_address = chunk_addr
            session.bytes_remaining = total - written
            self._report(20 + 60 * written // total, f"Writing 0x{chunk_addr:08x}")

        completed = self.protocol.write_data(
            address, body, progress=on_progress, is_cancelled=self._cancel_requested
        )
        if not completed:
            raise UpdateCancelled()

    def _verify_body(self, session: ProtocolSession, data: bytes) -> None:
        skip = self.config.vector_table_size
        self._report(85, "Verifying")
        session.image_crc = self.protocol.verify_data(session.start_address + skip, data[skip:])

    def _write_vector_table(self, session: ProtocolSession, data: bytes) -> None:
        skip = self.config.vector_table_size
        self._report(90, f"Writing first {skip} bytes")
        session.current_address = session.start_address
        session.bytes_remaining = skip
        self.protocol.write_data(session.start_address, data[:skip])
        session.bytes_remaining = 0

    def _exit(self, session: ProtocolSession, data: bytes) -> None:
        self._report(95, "Starting application")
        self.protocol.exit()
