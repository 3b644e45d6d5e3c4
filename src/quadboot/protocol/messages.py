"""
Boot protocol message definitions.

Command set (all answered by a BOOT_RESPONSE frame):

    BOOT_ENTER         magic (u32)                 -> status 1 on success
    BOOT_EXIT          -                           -> status 1 on success
    BOOT_ERASE_SECTOR  sector (u32)                -> FlashStatus
    BOOT_WRITE_DATA    address (u32) + data        -> FlashStatus
    BOOT_VERIFY        address (u32) + length (u32) -> CRC-32 (u32)

All integers are little-endian.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

from .framing import MAX_PAYLOAD, Frame

BOOT_MAGIC = 0xB00710AD
BOOT_OK = 1

# Write payload carries a 4-byte address ahead of the data
WRITE_CHUNK_SIZE = MAX_PAYLOAD - 4

# Ctrl-C, then "reset" on the application shell
SHELL_RESET_COMMAND = b"\x03\nreset\n"


class MessageId(IntEnum):
    SHELL_TO_PC = 0x01
    SHELL_FROM_PC = 0x02
    BOOT_ENTER = 0x10
    BOOT_EXIT = 0x11
    BOOT_ERASE_SECTOR = 0x12
    BOOT_WRITE_DATA = 0x13
    BOOT_VERIFY = 0x14
    BOOT_RESPONSE = 0x15


class FlashStatus(IntEnum):
    """Flash controller status codes reported by erase and write."""
    BUSY = 1
    ERROR_RD = 2
    ERROR_PGS = 3
    ERROR_PGP = 4
    ERROR_PGA = 5
    ERROR_WRP = 6
    ERROR_PROGRAM = 7
    ERROR_OPERATION = 8
    COMPLETE = 9


def flash_status_str(status: int) -> str:
    """Display name for a status byte; unknown codes show the number."""
    try:
        return f"FLASH_{FlashStatus(status).name}"
    except ValueError:
        return str(status)


@dataclass(frozen=True)
class CommandResponse:
    """
    Payload of a BOOT_RESPONSE frame.

    Attributes:
        status: First payload byte (flash status or success flag)
        aux: Remaining payload bytes
    """
    status: int
    aux: bytes = b""

    @classmethod
    def from_frame(cls, frame: Frame) -> "CommandResponse":
        if not frame.payload:
            return cls(status=0)
        return cls(status=frame.payload[0], aux=frame.payload[1:])

    @property
    def payload(self) -> bytes:
        return bytes([self.status]) + self.aux

    @property
    def value32(self) -> int:
        """First four payload bytes as u32 (the verify CRC)."""
        return int.from_bytes(self.payload[:4].ljust(4, b"\x00"), "little")


def build_shell_reset() -> Frame:
    return Frame(MessageId.SHELL_FROM_PC, SHELL_RESET_COMMAND)


def build_enter(magic: int = BOOT_MAGIC) -> Frame:
    return Frame(MessageId.BOOT_ENTER, struct.pack("<I", magic))


def build_exit() -> Frame:
    return Frame(MessageId.BOOT_EXIT)


def build_erase_sector(sector: int) -> Frame:
    return Frame(MessageId.BOOT_ERASE_SECTOR, struct.pack("<I", sector))


def build_write_data(address: int, data: bytes) -> Frame:
    if len(data) > WRITE_CHUNK_SIZE:
        raise ValueError(f"Write chunk too large: {len(data)} bytes (max {WRITE_CHUNK_SIZE})")
    return Frame(MessageId.BOOT_WRITE_DATA, struct.pack("<I", address) + bytes(data))


def build_verify(address: int, length: int) -> Frame:
    return Frame(MessageId.BOOT_VERIFY, struct.pack("<II", address, length))
