"""
Message frame codec.

Encoded frame layout (before stuffing)::

    +-----------+---------+---------------------+
    | CRC-16 LE |  ID LE  |       Payload       |
    |  2 bytes  | 2 bytes |  0..MAX_PAYLOAD     |
    +-----------+---------+---------------------+

- CRC-16 covers ID and payload only
- The whole block is COBS/R stuffed and terminated by a single 0x00

The codec is pure: no I/O and no state between calls, so the host and a
simulated device in tests share the same functions.
"""

import struct
from dataclasses import dataclass

from . import cobsr
from .crc import crc16
from .errors import ChecksumError, FrameError

MAX_PAYLOAD = 256
FRAME_TERMINATOR = 0x00
HEADER_SIZE = 4  # CRC + ID

_HEADER = struct.Struct("<HH")


@dataclass(frozen=True)
class Frame:
    """A decoded protocol message."""

    id: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.id <= 0xFFFF:
            raise FrameError(f"Frame id out of range: {self.id}")
        if len(self.payload) > MAX_PAYLOAD:
            raise FrameError(
                f"Payload too large: {len(self.payload)} bytes (max {MAX_PAYLOAD})"
            )

    @property
    def checksum(self) -> int:
        return frame_checksum(self.id, self.payload)

    def to_bytes(self) -> bytes:
        """Encode for the wire, terminator included."""
        return encode_frame(self.id, self.payload)

    def __repr__(self) -> str:
        return (
            f"Frame(id=0x{self.id:02X}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


def frame_checksum(msg_id: int, payload: bytes) -> int:
    """CRC-16 over the little-endian ID followed by the payload."""
    return crc16(struct.pack("<H", msg_id) + payload)


def encode_frame(msg_id: int, payload: bytes = b"") -> bytes:
    """
    Encode one message for a stream transport.

    Args:
        msg_id: 16-bit message ID
        payload: Message payload, at most MAX_PAYLOAD bytes

    Returns:
        Stuffed bytes including the trailing 0x00 terminator
    """
    frame = Frame(msg_id, bytes(payload))
    raw = _HEADER.pack(frame.checksum, frame.id) + frame.payload
    return cobsr.encode(raw) + bytes([FRAME_TERMINATOR])


def decode_frame(data: bytes) -> Frame:
    """
    Decode one stuffed frame.

    A single trailing terminator is accepted and ignored.

    Raises:
        FrameError: If the data is not a well-formed frame
        ChecksumError: If the CRC-16 does not match
    """
    if data and data[-1] == FRAME_TERMINATOR:
        data = data[:-1]
    if not data:
        raise FrameError("Empty frame")

    try:
        raw = cobsr.decode(data)
    except cobsr.CobsDecodeError as e:
        raise FrameError(f"Bad byte stuffing: {e}")

    if len(raw) < HEADER_SIZE:
        raise FrameError(f"Frame too short: {len(raw)} bytes")
    if len(raw) - HEADER_SIZE > MAX_PAYLOAD:
        raise FrameError(f"Frame payload too large: {len(raw) - HEADER_SIZE} bytes")

    expected, msg_id = _HEADER.unpack_from(raw)
    payload = raw[HEADER_SIZE:]
    actual = frame_checksum(msg_id, payload)
    if actual != expected:
        raise ChecksumError(expected, actual)

    return Frame(msg_id, payload)
