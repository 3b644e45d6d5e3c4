"""
COBS/R byte stuffing

Consistent Overhead Byte Stuffing, "Reduced" variant. The encoded output
never contains a zero byte, so a single 0x00 can delimit frames on a
stream transport.

The reduced variant differs from plain COBS only in the final block: if
the last data byte is larger than the block's length code, that byte
replaces the length code and is dropped from the block. The decoder spots
this because the code then points past the end of the input.
"""


class CobsDecodeError(ValueError):
    """Encoded data is not valid COBS/R."""


def encode(data: bytes) -> bytes:
    """
    Stuff ``data`` so the result contains no zero bytes.

    The frame terminator is not appended here.
    """
    out = bytearray()
    block_start = 0
    idx = 0

    for byte in data:
        if idx - block_start == 0xFE:
            # Maximum run of non-zero bytes, no implied zero
            out.append(0xFF)
            out += data[block_start:idx]
            block_start = idx
        if byte == 0:
            out.append(idx - block_start + 1)
            out += data[block_start:idx]
            block_start = idx + 1
        idx += 1

    final_byte = data[-1] if data else 0
    length_code = idx - block_start + 1
    if final_byte < length_code:
        out.append(length_code)
        out += data[block_start:idx]
    else:
        out.append(final_byte)
        out += data[block_start:idx - 1]

    return bytes(out)


def decode(data: bytes) -> bytes:
    """
    Reverse :func:`encode`.

    Raises:
        CobsDecodeError: If a zero byte appears in the encoded input
    """
    out = bytearray()
    idx = 0
    size = len(data)

    while idx < size:
        code = data[idx]
        if code == 0:
            raise CobsDecodeError(f"zero byte in encoded data at offset {idx}")
        idx += 1
        end = idx + code - 1
        block = data[idx:end]
        if 0 in block:
            raise CobsDecodeError("zero byte in encoded data")
        out += block
        idx = end
        if idx > size:
            # Reduced final block: the code byte is the last data byte
            out.append(code)
            break
        if idx < size and code < 0xFF:
            out.append(0)

    return bytes(out)
