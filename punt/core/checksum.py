"""CRC32 as computed by the bootloader's hardware CRC unit."""

from __future__ import annotations

import crcmod

CRC_POLY = 0x104C11DB7
CRC_SEED = 0xFFFFFFFF
CRC_XOR_OUT = 0

# CRC-32/MPEG-2. The target feeds flash to its CRC unit one 32-bit little-endian
# word at a time, most significant byte first.
_crc32_mpeg2 = crcmod.mkCrcFun(CRC_POLY, initCrc=CRC_SEED, rev=False, xorOut=CRC_XOR_OUT)


def crc32(data: bytes | bytearray | memoryview) -> int:
    """Calculate the CRC32 of a buffer the way the target does it.

    A trailing partial word is zero-padded on its high end before the byte
    order of every word is reversed.
    """
    words = bytearray()
    for offset in range(0, len(data), 4):
        word = bytes(data[offset:offset + 4]).ljust(4, b"\x00")
        words += word[::-1]
    return _crc32_mpeg2(bytes(words))
