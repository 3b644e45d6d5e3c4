"""
Error taxonomy for the boot protocol.

Every failure surfaced by the protocol layer is a ``BootloaderError``
subclass. Each class carries an ``ErrorKind`` so callers can branch on
the kind while still showing the formatted message verbatim.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Stable failure kinds."""
    FRAME_FORMAT = "frame_format"
    CHECKSUM = "checksum"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    DEVICE_STATUS = "device_status"
    INTEGRITY = "integrity"
    ENTRY = "entry"
    LOAD = "load"
    SESSION_BUSY = "session_busy"


class BootloaderError(Exception):
    """Base exception for boot protocol errors"""
    kind = ErrorKind.TRANSPORT


class FrameError(BootloaderError):
    """Encoded frame could not be decoded"""
    kind = ErrorKind.FRAME_FORMAT


class ChecksumError(FrameError):
    """Frame decoded but its CRC-16 did not match"""
    kind = ErrorKind.CHECKSUM

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Frame checksum mismatch: expected 0x{expected:04x}, got 0x{actual:04x}"
        )


class TransportError(BootloaderError):
    """Serial port could not be opened, written or read"""
    kind = ErrorKind.TRANSPORT


class TransportTimeout(TransportError):
    """No matching response arrived before the deadline"""
    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str = "Time out", expected_id: Optional[int] = None):
        self.expected_id = expected_id
        super().__init__(message)


class DeviceStatusError(BootloaderError):
    """
    Bootloader reported a flash controller failure.

    Attributes:
        status: Raw status byte from the response
        address: Flash address of the failed write, if any
        sector: Sector index of the failed erase, if any
    """
    kind = ErrorKind.DEVICE_STATUS

    def __init__(
        self,
        message: str,
        status: int,
        address: Optional[int] = None,
        sector: Optional[int] = None,
    ):
        self.status = status
        self.address = address
        self.sector = sector
        super().__init__(message)


class IntegrityMismatch(BootloaderError):
    """Host and device image CRC-32 values differ"""
    kind = ErrorKind.INTEGRITY

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Image CRC check failed. Expected 0x{expected:08x}, got 0x{actual:08x}"
        )


class EntryError(BootloaderError):
    """Device refused to enter or leave the bootloader"""
    kind = ErrorKind.ENTRY


class LoadError(BootloaderError):
    """Firmware image could not be loaded"""
    kind = ErrorKind.LOAD


class SessionBusyError(BootloaderError):
    """Another update session already owns the connection"""
    kind = ErrorKind.SESSION_BUSY
