"""Validated operations on an opened target."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from punt.core.errors import InvalidRequestError
from punt.core.flash import Page
from punt.core.handle import TargetHandle
from punt.core.model import BootloaderInfo, TargetInfo
from punt.core.operation import Erase, Program, Read

LOGGER = logging.getLogger(__name__)


class Target:
    """A connected target in bootloader mode.

    Every erase, program, and read is checked against the application flash
    reported by the most recent bootloader info before anything is sent. The
    unchecked operations stay available through `handle`.
    """

    def __init__(self, info: TargetInfo, handle: TargetHandle, bootloader_info: BootloaderInfo) -> None:
        self.info = info
        self._handle = handle
        self.bootloader_info = bootloader_info
        self._exited = False

    @property
    def handle(self) -> TargetHandle:
        self._ensure_usable()
        return self._handle

    def refresh_info(self) -> BootloaderInfo:
        self.bootloader_info = self.handle.bootloader_info()
        return self.bootloader_info

    def read_crc(self, address: int, length: int) -> int:
        return self.handle.read_crc(address, length)

    def verify(self, data: bytes | bytearray | memoryview, address: int) -> None:
        """Compare data against the target memory at address by CRC."""
        self.handle.verify(data, address)

    def erase_page(self, page: Page) -> None:
        self._check_page(page)
        self.handle.erase_page(page)

    def erase_pages(self, pages: Iterable[Page]) -> Erase:
        pages = list(pages)
        for page in pages:
            self._check_page(page)
        return Erase.pages(self.handle, pages)

    def erase_area(self, start: int, length: int) -> Erase:
        """Erase the fewest pages that cover [start, start + length)."""
        self._check_area(start, length)
        return Erase.area(self.handle, start, length)

    def program_at(self, data: bytes | bytearray | memoryview, address: int) -> Program:
        """Program data into erased flash starting at address."""
        self._check_area(address, len(data))
        # Flash is programmed halfword-wise.
        if address % 2:
            raise InvalidRequestError(f"Program address 0x{address:08x} is not halfword aligned")
        return Program.at(self.handle, data, address)

    def read_at(self, buffer: bytearray | memoryview, address: int) -> Read:
        self._check_area(address, len(buffer))
        return Read.at(self.handle, buffer, address)

    def read(self, address: int, length: int) -> bytes:
        buffer = bytearray(length)
        self.read_at(buffer, address).execute()
        return bytes(buffer)

    def exit_bootloader(self) -> None:
        """Start the application. The target is unusable afterwards."""
        self.handle.exit_bootloader()
        self._exited = True
        LOGGER.debug("Target %s left the bootloader", self.info)

    def close(self) -> None:
        self._handle.close()

    def __enter__(self) -> Target:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _ensure_usable(self) -> None:
        if self._exited:
            raise InvalidRequestError("Target has left the bootloader")

    def _check_area(self, start: int, length: int) -> None:
        info = self.bootloader_info
        if length < 0 or not info.contains(start, length):
            raise InvalidRequestError(
                f"Area 0x{start:08x}+{length} is outside the application flash "
                f"0x{info.application_base:08x}..0x{info.application_end:08x}"
            )

    def _check_page(self, page: Page) -> None:
        if not self.bootloader_info.contains_page(page):
            raise InvalidRequestError(f"Page {page.index} is outside the application flash")
