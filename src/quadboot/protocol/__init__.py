"""Bootloader protocol layer - framing, CRC, transport and update state machine."""

from .errors import (
    ErrorKind,
    BootloaderError,
    FrameError,
    ChecksumError,
    TransportError,
    TransportTimeout,
    DeviceStatusError,
    IntegrityMismatch,
    EntryError,
    LoadError,
    SessionBusyError,
)
from .framing import Frame, encode_frame, decode_frame, MAX_PAYLOAD
from .messages import (
    MessageId,
    FlashStatus,
    CommandResponse,
    flash_status_str,
    WRITE_CHUNK_SIZE,
)
from .correlator import ResponseCorrelator
from .pipeline import PipelinedWriter
from .config import BootConfig, TARGETS, get_target, list_targets
from .transport import SerialTransport
from .boot_protocol import (
    BootProtocol,
    BootPhase,
    ProtocolSession,
    UpdateStateMachine,
)

__all__ = [
    # Errors
    "ErrorKind",
    "BootloaderError",
    "FrameError",
    "ChecksumError",
    "TransportError",
    "TransportTimeout",
    "DeviceStatusError",
    "IntegrityMismatch",
    "EntryError",
    "LoadError",
    "SessionBusyError",
    # Framing
    "Frame",
    "encode_frame",
    "decode_frame",
    "MAX_PAYLOAD",
    # Messages
    "MessageId",
    "FlashStatus",
    "CommandResponse",
    "flash_status_str",
    "WRITE_CHUNK_SIZE",
    # Engine
    "ResponseCorrelator",
    "PipelinedWriter",
    "BootConfig",
    "TARGETS",
    "get_target",
    "list_targets",
    "BootProtocol",
    "BootPhase",
    "ProtocolSession",
    "UpdateStateMachine",
    # Transport
    "SerialTransport",
]
