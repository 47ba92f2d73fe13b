"""Flash geometry of the target microcontroller."""

from __future__ import annotations

from dataclasses import dataclass

from punt.core.errors import InvalidRequestError

# Address of the first byte in the target's flash.
FLASH_BASE = 0x0800_0000

# Size of one erasable flash page in bytes.
PAGE_SIZE = 1024

# The erase request carries the page index in a single byte.
MAX_PAGE_INDEX = 0xFF


@dataclass(frozen=True, order=True)
class Page:
    """A page of flash, counted from 0 at FLASH_BASE."""

    index: int

    def __post_init__(self) -> None:
        if not 0 <= self.index <= MAX_PAGE_INDEX:
            raise InvalidRequestError(f"Page index {self.index} is out of range")

    @classmethod
    def from_address(cls, address: int) -> Page:
        """Refers to the page containing the given address."""
        if address < FLASH_BASE:
            raise InvalidRequestError(f"Address 0x{address:08x} is below flash base")
        return cls((address - FLASH_BASE) // PAGE_SIZE)

    def begin(self) -> int:
        """The first address in the page."""
        return FLASH_BASE + self.index * PAGE_SIZE

    def end(self) -> int:
        """The address of the last byte in the page."""
        return FLASH_BASE + (self.index + 1) * PAGE_SIZE - 1

    def __int__(self) -> int:
        return self.index


def pages_for_area(start: int, length: int) -> list[Page]:
    """Returns the minimal, ascending list of pages covering [start, start + length)."""
    if length <= 0:
        return []
    first = Page.from_address(start)
    last = Page.from_address(start + length - 1)
    return [Page(index) for index in range(first.index, last.index + 1)]
