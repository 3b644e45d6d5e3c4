"""Tests for COBS/R stuffing and the message frame codec."""

import struct

import pytest

from quadboot.protocol import cobsr
from quadboot.protocol.crc import crc16
from quadboot.protocol.errors import ChecksumError, ErrorKind, FrameError
from quadboot.protocol.framing import (
    MAX_PAYLOAD,
    Frame,
    decode_frame,
    encode_frame,
    frame_checksum,
)
from quadboot.protocol.messages import (
    BOOT_MAGIC,
    WRITE_CHUNK_SIZE,
    CommandResponse,
    FlashStatus,
    MessageId,
    build_enter,
    build_verify,
    build_write_data,
    flash_status_str,
)


class TestCobsr:
    """Known COBS/R vectors, including the reduced final block."""

    @pytest.mark.parametrize(
        "raw,encoded",
        [
            (b"", b"\x01"),
            (b"\x00", b"\x01\x01"),
            (b"\x01", b"\x02\x01"),
            (b"\x02", b"\x02"),
            (b"\x11\x22\x00\x33", b"\x03\x11\x22\x33"),
            (b"\x11\x22\x33\x44", b"\x44\x11\x22\x33"),
            (b"\x11\x00\x00\x00", b"\x02\x11\x01\x01\x01"),
        ],
    )
    def test_known_vectors(self, raw: bytes, encoded: bytes) -> None:
        assert cobsr.encode(raw) == encoded
        assert cobsr.decode(encoded) == raw

    def test_long_run_without_zeros(self) -> None:
        """A 254-byte non-zero run needs a 0xFF code block."""
        raw = bytes([0x01]) * 300
        encoded = cobsr.encode(raw)
        assert 0 not in encoded
        assert encoded[0] == 0xFF
        assert cobsr.decode(encoded) == raw

    def test_output_never_contains_zero(self) -> None:
        raw = bytes(range(256)) * 3
        assert 0 not in cobsr.encode(raw)
        assert cobsr.decode(cobsr.encode(raw)) == raw

    def test_decode_rejects_zero_byte(self) -> None:
        with pytest.raises(cobsr.CobsDecodeError):
            cobsr.decode(b"\x03\x11\x00")


class TestFrameCodec:
    """Frame layout: CRC-16 LE, ID LE, payload; stuffed; 0x00 terminated."""

    def test_encoded_frame_has_single_terminator(self) -> None:
        data = encode_frame(MessageId.BOOT_WRITE_DATA, bytes(range(256)))
        assert data[-1] == 0
        assert 0 not in data[:-1]

    def test_unstuffed_layout(self) -> None:
        data = encode_frame(0x1234, b"\xAA\xBB")
        raw = cobsr.decode(data[:-1])
        expected_crc = crc16(b"\x34\x12\xAA\xBB")
        assert raw == struct.pack("<HH", expected_crc, 0x1234) + b"\xAA\xBB"
        assert frame_checksum(0x1234, b"\xAA\xBB") == expected_crc

    def test_decode_returns_id_and_payload(self) -> None:
        frame = decode_frame(encode_frame(MessageId.BOOT_RESPONSE, b"\x09"))
        assert frame == Frame(MessageId.BOOT_RESPONSE, b"\x09")

    def test_decode_without_terminator(self) -> None:
        data = encode_frame(MessageId.BOOT_EXIT)
        assert decode_frame(data[:-1]).id == MessageId.BOOT_EXIT

    def test_empty_payload(self) -> None:
        frame = decode_frame(encode_frame(MessageId.BOOT_EXIT))
        assert frame.payload == b""

    def test_max_payload_accepted(self) -> None:
        payload = bytes([0x5A]) * MAX_PAYLOAD
        assert decode_frame(encode_frame(7, payload)).payload == payload

    def test_oversized_payload_rejected(self) -> None:
        with pytest.raises(FrameError):
            encode_frame(7, bytes(MAX_PAYLOAD + 1))

    def test_oversized_frame_rejected_on_decode(self) -> None:
        raw = struct.pack("<HH", 0, 7) + bytes(MAX_PAYLOAD + 1)
        with pytest.raises(FrameError):
            decode_frame(cobsr.encode(raw))

    def test_short_frame_rejected(self) -> None:
        with pytest.raises(FrameError) as excinfo:
            decode_frame(cobsr.encode(b"\x01\x02\x03") + b"\x00")
        assert excinfo.value.kind == ErrorKind.FRAME_FORMAT

    def test_empty_input_rejected(self) -> None:
        with pytest.raises(FrameError):
            decode_frame(b"\x00")

    def test_checksum_mismatch(self) -> None:
        """A frame with a wrong CRC raises ChecksumError with both values."""
        good = frame_checksum(0x15, b"\x09")
        raw = struct.pack("<HH", good ^ 0x0001, 0x15) + b"\x09"
        with pytest.raises(ChecksumError) as excinfo:
            decode_frame(cobsr.encode(raw) + b"\x00")
        err = excinfo.value
        assert err.kind == ErrorKind.CHECKSUM
        assert err.expected == good ^ 0x0001
        assert err.actual == good
        assert "Frame checksum mismatch" in str(err)

    def test_every_single_bit_flip_is_caught(self) -> None:
        """Flipping any bit of the frame body before stuffing fails the CRC."""
        payload = b"\x00\x01\x7F\x80\xFF" * 4
        raw = struct.pack("<HH", frame_checksum(0x13, payload), 0x13) + payload
        for bit in range(len(raw) * 8):
            corrupted = bytearray(raw)
            corrupted[bit // 8] ^= 1 << (bit % 8)
            with pytest.raises(ChecksumError):
                decode_frame(cobsr.encode(bytes(corrupted)) + b"\x00")

    def test_frame_id_range(self) -> None:
        with pytest.raises(FrameError):
            Frame(0x10000)


class TestMessages:
    """Command builders and response helpers."""

    def test_enter_carries_magic(self) -> None:
        frame = build_enter()
        assert frame.id == MessageId.BOOT_ENTER
        assert frame.payload == struct.pack("<I", BOOT_MAGIC)

    def test_write_payload_address_then_data(self) -> None:
        frame = build_write_data(0x08010008, b"\x01\x02")
        assert frame.payload == b"\x08\x00\x01\x08\x01\x02"

    def test_write_chunk_fills_max_payload(self) -> None:
        frame = build_write_data(0, bytes(WRITE_CHUNK_SIZE))
        assert len(frame.payload) == MAX_PAYLOAD
        with pytest.raises(ValueError):
            build_write_data(0, bytes(WRITE_CHUNK_SIZE + 1))

    def test_verify_payload(self) -> None:
        assert build_verify(0x08010008, 4088).payload == struct.pack("<II", 0x08010008, 4088)

    def test_response_value32(self) -> None:
        frame = Frame(MessageId.BOOT_RESPONSE, struct.pack("<I", 0xCBF43926))
        assert CommandResponse.from_frame(frame).value32 == 0xCBF43926

    def test_empty_response_has_status_zero(self) -> None:
        assert CommandResponse.from_frame(Frame(MessageId.BOOT_RESPONSE)).status == 0

    def test_flash_status_names(self) -> None:
        assert flash_status_str(FlashStatus.COMPLETE) == "FLASH_COMPLETE"
        assert flash_status_str(6) == "FLASH_ERROR_WRP"
        assert flash_status_str(42) == "42"
