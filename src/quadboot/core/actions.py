"""
Core workflow actions for quadboot.

Pure-ish functions the CLI (or any other front end) calls. Each returns an
UpdateResult instead of raising, so callers can branch on the outcome and
still show the protocol's own error text.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional

from quadboot.protocol.boot_protocol import (
    BootPhase,
    BootProtocol,
    ProtocolSession,
    UpdateStateMachine,
)
from quadboot.protocol.config import DEFAULT_BAUDRATE, BootConfig
from quadboot.protocol.errors import (
    BootloaderError,
    LoadError,
    SessionBusyError,
    TransportError,
)
from quadboot.protocol.transport import SerialTransport

from .image import load_first_section, load_image
from .progress import ProgressReporter
from .results import Outcome, UpdateResult

logger = logging.getLogger(__name__)

_TIMING_LABELS = (
    (BootPhase.ENTERING_BOOTLOADER.value, "Enter"),
    (BootPhase.ERASING.value, "Erase"),
    (BootPhase.WRITING.value, "Write"),
    (BootPhase.VERIFYING.value, "Verify"),
    ("total", "Total"),
)

_sessions_lock = threading.Lock()
_active_transports: "weakref.WeakSet" = weakref.WeakSet()


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "quadboot"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


@contextmanager
def exclusive_session(transport):
    """
    Claim a transport for one update session.

    Raises:
        SessionBusyError: If another session holds the transport
    """
    with _sessions_lock:
        if transport in _active_transports:
            raise SessionBusyError("An update session is already active on this connection")
        _active_transports.add(transport)
    try:
        yield transport
    finally:
        with _sessions_lock:
            _active_transports.discard(transport)


def _apply_session(result: UpdateResult, session: ProtocolSession) -> None:
    result.timings = dict(session.timings)
    result.metadata["entry_attempts"] = session.entry_attempts
    result.metadata["phases"] = [phase.value for phase in session.history]

    if session.phase == BootPhase.DONE:
        result.outcome = Outcome.DONE
        result.image_crc = session.image_crc
        for key, label in _TIMING_LABELS:
            if key in session.timings:
                logger.info(f"  {label + ':':<8}{session.timings[key]:.0f} ms")
    elif session.phase == BootPhase.CANCELLED:
        result.outcome = Outcome.CANCELLED
        stopped = session.history[-2].value if len(session.history) > 1 else "start"
        result.metadata["stopped_during"] = stopped
        result.add_warning(
            f"Update cancelled during {stopped}; the device stays in the bootloader "
            "until a full update completes"
        )
    else:
        failed = session.history[-2].value if len(session.history) > 1 else "start"
        result.metadata["failed_during"] = failed
        result.add_error(session.last_error)


def _run_update(
    result: UpdateResult,
    transport,
    image_path: str,
    config: BootConfig,
    progress: ProgressReporter,
    base_address: Optional[int],
    idle: Optional[Callable[[], None]],
    dry_run: bool,
) -> None:
    progress.report(0, f"Loading {Path(image_path).name}")
    try:
        section = load_first_section(
            image_path,
            base_address if base_address is not None else config.app_base,
            min_size=config.vector_table_size,
        )
    except LoadError as e:
        logger.error(str(e))
        result.add_error(e)
        return

    result.region = section.region
    result.bytes_len = section.size
    result.metadata["start_address"] = f"0x{section.start_address:08X}"
    result.metadata["sectors"] = list(config.sectors)
    logger.info(f"Start 0x{section.start_address:08x}")
    logger.info(f"End   0x{section.end_address:08x}")

    if dry_run:
        result.outcome = Outcome.DRY_RUN
        result.image_crc = section.crc32
        result.add_warning("Dry run: image loaded, nothing written")
        return

    try:
        with exclusive_session(transport):
            protocol = BootProtocol(transport, config, idle=idle)
            machine = UpdateStateMachine(protocol, progress.report, progress.is_cancelled)
            session = machine.run(section.start_address, section.data)
    except SessionBusyError as e:
        logger.error(str(e))
        result.add_error(e)
        return

    _apply_session(result, session)


def flash_image(
    transport,
    image_path: str,
    config: Optional[BootConfig] = None,
    progress: Optional[ProgressReporter] = None,
    base_address: Optional[int] = None,
    idle: Optional[Callable[[], None]] = None,
    dry_run: bool = False,
) -> UpdateResult:
    """
    Flash the first section of an image over an open frame transport.

    Args:
        transport: Object with ``send(bytes)`` and an ``inbox`` queue of frames
        image_path: Intel HEX file or raw binary
        config: Target protocol parameters (defaults to BootConfig())
        progress: Progress sink and cancellation flag
        base_address: Load address for raw binaries (default config.app_base)
        idle: Called while waiting for replies
        dry_run: Load and validate only

    Returns:
        UpdateResult with outcome DONE, FAILED, CANCELLED or DRY_RUN
    """
    config = config or BootConfig()
    progress = progress or ProgressReporter()
    result = UpdateResult(outcome=Outcome.DONE, operation="flash", image=str(image_path))

    with _capture_logs() as logs:
        try:
            _run_update(result, transport, image_path, config, progress, base_address, idle, dry_run)
        finally:
            result.logs = list(logs)
    return result


def flash_serial(
    port: str,
    image_path: str,
    baudrate: int = DEFAULT_BAUDRATE,
    config: Optional[BootConfig] = None,
    progress: Optional[ProgressReporter] = None,
    base_address: Optional[int] = None,
    dry_run: bool = False,
) -> UpdateResult:
    """Top-level serial flash helper used by the CLI."""
    if dry_run:
        return flash_image(None, image_path, config, progress, base_address, dry_run=True)

    transport = SerialTransport(port, baudrate)
    try:
        transport.open()
    except TransportError as e:
        return UpdateResult.failure("flash", e, image=str(image_path))

    try:
        result = flash_image(transport, image_path, config, progress, base_address)
    finally:
        transport.close()

    dropped = transport.frames_dropped
    if dropped:
        result.add_warning(f"{dropped} corrupt frame(s) dropped by the receiver")
    result.metadata["port"] = port
    result.metadata["baudrate"] = baudrate
    return result


def inspect_image(image_path: str, base_address: Optional[int] = None) -> UpdateResult:
    """Load an image and describe its sections without touching a device."""
    result = UpdateResult(outcome=Outcome.DONE, operation="inspect", image=str(image_path))
    try:
        sections = load_image(image_path, base_address)
    except BootloaderError as e:
        result.add_error(e)
        return result

    result.metadata["sections"] = [
        {
            "start": f"0x{s.start_address:08X}",
            "end": f"0x{s.end_address:08X}",
            "size": s.size,
            "crc32": f"0x{s.crc32:08X}",
        }
        for s in sections
    ]
    if sections:
        result.region = sections[0].region
        result.bytes_len = sections[0].size
        result.image_crc = sections[0].crc32
    if len(sections) > 1:
        result.add_warning(f"{len(sections)} sections found; only the first is flashed")
    if not sections:
        result.add_warning("Image contains no data")
    return result
