"""
CRC engines shared by host and bootloader.

Two independent streaming checksums:

- CRC-16/CCITT-FALSE (poly 0x1021, init 0xFFFF, no reflection, no final
  xor) protects each frame in transit.
- CRC-32 (IEEE 802.3) is computed over the programmed image by both
  peers to confirm the flash contents.

Both expose ``init() -> state``, ``update(state, data) -> state`` and
``finalize(state) -> value`` so partial buffers can be fed in any split.
"""

import zlib

CRC16_POLY = 0x1021
CRC16_INIT = 0xFFFF


def _make_crc16_table():
    table = []
    for i in range(256):
        crc = i << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ CRC16_POLY) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
        table.append(crc)
    return tuple(table)


_CRC16_TABLE = _make_crc16_table()


def crc16_init() -> int:
    return CRC16_INIT


def crc16_update(crc: int, data: bytes) -> int:
    for byte in data:
        crc = ((crc << 8) & 0xFFFF) ^ _CRC16_TABLE[((crc >> 8) ^ byte) & 0xFF]
    return crc


def crc16_finalize(crc: int) -> int:
    return crc & 0xFFFF


def crc16(data: bytes) -> int:
    """One-shot CRC-16 over ``data``."""
    return crc16_finalize(crc16_update(crc16_init(), data))


def crc32_init() -> int:
    return 0


def crc32_update(crc: int, data: bytes) -> int:
    # zlib applies the pre/post inversion itself, so the running value
    # can be chained directly.
    return zlib.crc32(data, crc)


def crc32_finalize(crc: int) -> int:
    return crc & 0xFFFFFFFF


def crc32(data: bytes) -> int:
    """One-shot CRC-32 over ``data``."""
    return crc32_finalize(crc32_update(crc32_init(), data))
