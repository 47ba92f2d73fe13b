"""Low-level command transactions with an opened bootloader target."""

from __future__ import annotations

import logging
import threading

from punt.core.checksum import crc32
from punt.core.errors import TransportError, UnsupportedTargetError, VerificationError
from punt.core.flash import Page
from punt.core.model import BootloaderInfo, TargetProfile
from punt.core.protocol import (
    CRC_PACKET_SIZE,
    ERASE_STATUS_SIZE,
    INFO_PACKET_SIZE,
    PROGRAM_HEADER_SIZE,
    REQUEST_TYPE_VENDOR_OUT,
    Command,
    decode_bootloader_info,
    decode_crc,
    decode_erase_status,
    encode_erase,
    encode_program,
    encode_range,
)
from punt.transports.base import UsbConnection

LOGGER = logging.getLogger(__name__)


class TargetHandle:
    """Raw access to an opened target.

    Nothing on this level checks addresses or pages against the application
    flash; see `punt.core.target.Target` for the validated operations.
    """

    def __init__(self, connection: UsbConnection, profile: TargetProfile) -> None:
        self._connection = connection
        self._transport = profile.transport
        self._lock = threading.Lock()
        self.in_buffer_length, self.out_buffer_length = connection.endpoint_sizes()
        if self.in_buffer_length <= 0 or self.max_program_chunk_size <= 0:
            raise UnsupportedTargetError(
                f"Endpoint sizes in={self.in_buffer_length} out={self.out_buffer_length} "
                "are too small for the bootloader protocol"
            )
        LOGGER.debug(
            "Opened target with endpoint sizes in=%d out=%d",
            self.in_buffer_length,
            self.out_buffer_length,
        )

    @property
    def max_read_chunk_size(self) -> int:
        return self.in_buffer_length

    @property
    def max_program_chunk_size(self) -> int:
        # The program packet starts with the 4-byte address. Keep chunks even so
        # every chunk after the first also starts on a halfword.
        size = self.out_buffer_length - PROGRAM_HEADER_SIZE
        return size - size % 2

    def bootloader_info(self) -> BootloaderInfo:
        packet = self.send_command(Command.BOOTLOADER_INFO, read_length=INFO_PACKET_SIZE)
        return decode_bootloader_info(packet)

    def read_crc(self, start: int, length: int) -> int:
        packet = self.send_command(
            Command.READ_CRC,
            encode_range(start, length),
            read_length=CRC_PACKET_SIZE,
        )
        return decode_crc(packet)

    def verify(self, data: bytes | bytearray | memoryview, address: int) -> None:
        actual = self.read_crc(address, len(data))
        expected = crc32(data)
        if actual != expected:
            raise VerificationError(expected, actual)

    def read_chunk(self, address: int, buffer: bytearray | memoryview) -> None:
        """Fill buffer from target memory; it must fit `max_read_chunk_size`."""
        data = self.send_command(
            Command.READ_MEMORY,
            encode_range(address, len(buffer)),
            read_length=len(buffer),
        )
        if len(data) != len(buffer):
            raise TransportError(f"Short read at 0x{address:08x}: {len(data)}/{len(buffer)} bytes")
        buffer[:] = data

    def program_chunk(self, address: int, data: bytes | bytearray | memoryview) -> None:
        """Program one chunk into already erased flash."""
        self.send_command(Command.PROGRAM, encode_program(address, data))

    def erase_page(self, page: Page) -> None:
        """Erase a single page. The page is not checked against the application flash."""
        status = self.send_command(
            Command.ERASE_PAGE,
            encode_erase(page),
            read_length=ERASE_STATUS_SIZE,
        )
        error = decode_erase_status(status, page)
        if error is not None:
            raise error

    def exit_bootloader(self) -> None:
        self.send_command(Command.EXIT)

    def close(self) -> None:
        self._connection.close()

    def send_command(self, command: Command, payload: bytes = b"", *, read_length: int = 0) -> bytes:
        """Run one command transaction and return the bytes read back."""
        transport = self._transport
        connection = self._connection
        with self._lock:
            LOGGER.debug(
                "%s: sending %d bytes, reading %d bytes",
                command.name,
                len(payload),
                read_length,
            )
            connection.claim_interface(transport.interface)
            try:
                connection.control_out(
                    REQUEST_TYPE_VENDOR_OUT,
                    int(command),
                    0,
                    0,
                    timeout_ms=transport.timeout_ms,
                )
                if payload:
                    written = connection.bulk_write(
                        transport.endpoint_out,
                        payload,
                        timeout_ms=transport.timeout_ms,
                    )
                    if written != len(payload):
                        raise TransportError(
                            f"Incomplete write for {command.name}: sent {written}/{len(payload)} bytes"
                        )
                data = b""
                if read_length:
                    data = connection.bulk_read(
                        transport.endpoint_in,
                        read_length,
                        timeout_ms=transport.timeout_ms,
                    )
            finally:
                connection.release_interface(transport.interface)
        return data
