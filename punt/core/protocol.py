"""Wire format of the bootloader's USB commands.

Every command is announced by a zero-length vendor control transfer whose
``bRequest`` is the command byte. Request payloads follow on the bulk-out
endpoint and responses arrive on the bulk-in endpoint. All integers are
little endian.
"""

from __future__ import annotations

import struct
from enum import IntEnum

from punt.core.errors import EraseError, MalformedResponseError
from punt.core.flash import Page
from punt.core.model import BootloaderInfo, Version

_U32 = struct.Struct("<I")
_RANGE = struct.Struct("<II")
_INFO_HEADER = struct.Struct("<IIII")
_VERSION = struct.Struct("<BBB")

# Largest bootloader info packet the target sends.
INFO_PACKET_SIZE = 64

# The program packet carries the start address in front of the payload.
PROGRAM_HEADER_SIZE = _U32.size

CRC_PACKET_SIZE = _U32.size
ERASE_STATUS_SIZE = 1

# bmRequestType: host-to-device, vendor, device recipient.
REQUEST_TYPE_VENDOR_OUT = 0x40


class Command(IntEnum):
    BOOTLOADER_INFO = 0x01
    READ_CRC = 0x02
    READ_MEMORY = 0x03
    ERASE_PAGE = 0x04
    PROGRAM = 0x05
    EXIT = 0xFF


def encode_range(start: int, length: int) -> bytes:
    return _RANGE.pack(start, length)


def encode_erase(page: Page) -> bytes:
    return bytes((page.index,))


def encode_program(address: int, data: bytes | bytearray | memoryview) -> bytes:
    return _U32.pack(address) + bytes(data)


def decode_crc(packet: bytes) -> int:
    if len(packet) != CRC_PACKET_SIZE:
        raise MalformedResponseError(f"CRC response has {len(packet)} bytes, expected {CRC_PACKET_SIZE}")
    return _U32.unpack(packet)[0]


def decode_erase_status(packet: bytes, page: Page | None = None) -> EraseError | None:
    """Returns None for a successful erase, otherwise the error to raise."""
    if len(packet) != ERASE_STATUS_SIZE:
        raise MalformedResponseError(f"Erase status has {len(packet)} bytes, expected {ERASE_STATUS_SIZE}")
    code = packet[0]
    if code == 0:
        return None
    return EraseError(code, page=page.index if page is not None else None)


def format_build_date(raw: int) -> str:
    digits = str(raw)
    if len(digits) != 8:
        raise MalformedResponseError(f"Build date {raw} is not of the form YYYYMMDD")
    return f"{digits[:4]}-{digits[4:6]}-{digits[6:]}"


def _decode_identifier(raw: bytes) -> str:
    text, _, padding = raw.partition(b"\x00")
    if padding.strip(b"\x00"):
        raise MalformedResponseError("Bootloader identifier has data after its terminator")
    try:
        return text.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedResponseError(f"Bootloader identifier is not valid UTF-8: {exc}") from exc


def decode_bootloader_info(packet: bytes) -> BootloaderInfo:
    """Decodes a bootloader info packet.

    Older bootloaders send only the four 32-bit fields; newer ones append a
    three byte version and an identifier string filling the rest of the packet.
    """
    if len(packet) < _INFO_HEADER.size:
        raise MalformedResponseError(
            f"Bootloader info has {len(packet)} bytes, expected at least {_INFO_HEADER.size}"
        )
    build_date, build_number, application_base, application_size = _INFO_HEADER.unpack_from(packet)

    version: Version | None = None
    identifier: str | None = None
    rest = packet[_INFO_HEADER.size:]
    if rest:
        if len(rest) < _VERSION.size:
            raise MalformedResponseError("Bootloader info ends inside the version field")
        version = Version(*_VERSION.unpack_from(rest))
        identifier = _decode_identifier(rest[_VERSION.size:])

    return BootloaderInfo(
        build_number=build_number,
        build_date=format_build_date(build_date),
        application_base=application_base,
        application_size=application_size,
        version=version,
        identifier=identifier,
    )
