from __future__ import annotations

import struct

import pytest

from punt.core.checksum import crc32
from punt.core.context import Context
from punt.core.errors import TransportTimeoutError
from punt.core.flash import FLASH_BASE, PAGE_SIZE
from punt.core.model import DescriptorStrings, MatchRules, TargetProfile, TransportSpec
from punt.core.protocol import Command

PROFILE = TargetProfile(
    id="punt",
    name="Punt USB bootloader",
    match=MatchRules(
        vendor_id=0x16C0,
        product_id=0x05DC,
        manufacturer="punt",
        product="punt bootloader",
    ),
    transport=TransportSpec(interface=0, endpoint_out=0x02, endpoint_in=0x81, timeout_ms=500),
)

APP_BASE = FLASH_BASE + 2 * PAGE_SIZE
APP_SIZE = 30 * PAGE_SIZE
FLASH_SIZE = 32 * PAGE_SIZE


class FakeBootloader:
    """Simulated bootloader firmware behind the USB transport protocol."""

    def __init__(
        self,
        *,
        in_size: int = 64,
        out_size: int = 68,
        info_packet: bytes | None = None,
    ) -> None:
        self.in_size = in_size
        self.out_size = out_size
        self.memory = bytearray(b"\xff" * FLASH_SIZE)
        self.info_packet = info_packet if info_packet is not None else self.default_info_packet()
        self.erase_status: dict[int, int] = {}
        self.crc_override: int | None = None
        self.fail_command: Command | None = None
        self.fail_at = 1
        self.sent: list[Command] = []
        self.erased: list[int] = []
        self.programmed: list[tuple[int, int]] = []
        self.exited = False

    @staticmethod
    def default_info_packet() -> bytes:
        return (
            struct.pack("<IIII", 20190614, 42, APP_BASE, APP_SIZE)
            + bytes((1, 2, 3))
            + b"STM32F042C6\x00"
        )

    def transaction_count(self, command: Command | None = None) -> int:
        if command is None:
            return len(self.sent)
        return self.sent.count(command)

    def start(self, command: Command) -> None:
        self.sent.append(command)
        if command == self.fail_command and self.sent.count(command) == self.fail_at:
            raise TransportTimeoutError(f"USB control transfer 0x{command:02x} timed out")

    def respond(self, command: Command, payload: bytes) -> bytes:
        if command == Command.BOOTLOADER_INFO:
            return self.info_packet
        if command == Command.READ_CRC:
            start, length = struct.unpack("<II", payload)
            if self.crc_override is not None:
                return struct.pack("<I", self.crc_override)
            return struct.pack("<I", crc32(self._slice(start, length)))
        if command == Command.READ_MEMORY:
            start, length = struct.unpack("<II", payload)
            return bytes(self._slice(start, length))
        if command == Command.ERASE_PAGE:
            index = payload[0]
            status = self.erase_status.get(index, 0)
            if status == 0:
                offset = index * PAGE_SIZE
                self.memory[offset:offset + PAGE_SIZE] = b"\xff" * PAGE_SIZE
                self.erased.append(index)
            return bytes((status,))
        if command == Command.PROGRAM:
            (address,) = struct.unpack_from("<I", payload)
            data = payload[4:]
            offset = address - FLASH_BASE
            self.memory[offset:offset + len(data)] = data
            self.programmed.append((address, len(data)))
            return b""
        if command == Command.EXIT:
            self.exited = True
            return b""
        raise AssertionError(f"Unexpected command {command!r}")

    def _slice(self, start: int, length: int) -> bytearray:
        offset = start - FLASH_BASE
        return self.memory[offset:offset + length]


class FakeConnection:
    def __init__(self, bootloader: FakeBootloader) -> None:
        self.bootloader = bootloader
        self.log: list[tuple] = []
        self.closed = False
        self._command: Command | None = None
        self._response = b""

    def endpoint_sizes(self) -> tuple[int, int]:
        return self.bootloader.in_size, self.bootloader.out_size

    def claim_interface(self, interface: int) -> None:
        self.log.append(("claim", interface))

    def release_interface(self, interface: int) -> None:
        self.log.append(("release", interface))

    def control_out(self, request_type: int, request: int, value: int, index: int, *, timeout_ms: int) -> None:
        self.log.append(("control", request_type, request, value, index))
        command = Command(request)
        self.bootloader.start(command)
        self._command = command
        self._response = b""
        if command in (Command.BOOTLOADER_INFO, Command.EXIT):
            self._response = self.bootloader.respond(command, b"")

    def bulk_write(self, endpoint: int, data: bytes, *, timeout_ms: int) -> int:
        self.log.append(("write", endpoint, bytes(data)))
        assert self._command is not None
        self._response = self.bootloader.respond(self._command, bytes(data))
        return len(data)

    def bulk_read(self, endpoint: int, length: int, *, timeout_ms: int) -> bytes:
        self.log.append(("read", endpoint, length))
        return self._response[:length]

    def close(self) -> None:
        self.closed = True


class FakeDevice:
    def __init__(
        self,
        bootloader: FakeBootloader | None = None,
        *,
        bus: int = 1,
        address: int = 5,
        vendor_id: int = 0x16C0,
        product_id: int = 0x05DC,
        manufacturer: str | None = "punt",
        product: str | None = "punt bootloader",
        serial: str | None = "PUNT-0001\x00",
        strings_error: Exception | None = None,
    ) -> None:
        self.bootloader = bootloader or FakeBootloader()
        self.bus = bus
        self.address = address
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.strings = DescriptorStrings(manufacturer=manufacturer, product=product, serial=serial)
        self.strings_error = strings_error
        self.connections: list[FakeConnection] = []

    def descriptor_strings(self, language: int | None = None, *, timeout_ms: int = 500) -> DescriptorStrings:
        if self.strings_error is not None:
            raise self.strings_error
        return self.strings

    def open(self) -> FakeConnection:
        connection = FakeConnection(self.bootloader)
        self.connections.append(connection)
        return connection


class FakeBackend:
    def __init__(self, devices: list[FakeDevice]) -> None:
        self.device_list = devices

    def devices(self) -> list[FakeDevice]:
        return list(self.device_list)


@pytest.fixture
def bootloader() -> FakeBootloader:
    return FakeBootloader()


@pytest.fixture
def device(bootloader: FakeBootloader) -> FakeDevice:
    return FakeDevice(bootloader)


@pytest.fixture
def context(device: FakeDevice) -> Context:
    return Context(backend=FakeBackend([device]), profiles={PROFILE.id: PROFILE})


@pytest.fixture
def target(context: Context):
    opened = context.open(context.pick_target())
    yield opened
    opened.close()
