"""Operations that take multiple command transactions.

An operation is an iterator and therefore lazy: constructing one sends
nothing. Each step performs exactly one USB transaction and yields the
cumulative progress, which makes progress reporting possible without threads::

    erase = target.erase_area(0x0800_0c00, 1024)
    for done in erase:
        print(f"Erased {done} of {erase.total} pages")

or simply ``target.erase_area(0x0800_0c00, 1024).execute()``.

After a failing step the operation is fused: the error is raised once and no
further transactions are issued. Work already done is not rolled back.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Iterable, Iterator

from punt.core.errors import PuntError
from punt.core.flash import Page, pages_for_area
from punt.core.handle import TargetHandle

LOGGER = logging.getLogger(__name__)


class Operation(Iterator[int]):
    def __init__(self, handle: TargetHandle, total: int) -> None:
        self._handle = handle
        self._total = total
        self._progress = 0
        self._done = total == 0

    @property
    def total(self) -> int:
        """The value progress is expressed against.

        Pages for an erase, bytes for a program or read.
        """
        return self._total

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def done(self) -> bool:
        return self._done

    def step(self) -> int | None:
        """Perform one transaction and return the new progress, or None when done."""
        if self._done:
            return None
        try:
            self._progress = self._advance()
        except PuntError:
            self._done = True
            raise
        if self._progress >= self._total:
            self._done = True
        LOGGER.debug("%s: %d/%d", type(self).__name__, self._progress, self._total)
        return self._progress

    @abstractmethod
    def _advance(self) -> int:
        """Perform one transaction and return the new progress."""

    def __next__(self) -> int:
        progress = self.step()
        if progress is None:
            raise StopIteration
        return progress

    def execute(self) -> None:
        """Run the operation to completion. Raises on the first error."""
        for _ in self:
            pass


class Erase(Operation):
    """Page-wise flash erase."""

    def __init__(self, handle: TargetHandle, pages: Iterable[Page]) -> None:
        self._pages = sorted(set(pages))
        super().__init__(handle, len(self._pages))

    @classmethod
    def pages(cls, handle: TargetHandle, pages: Iterable[Page]) -> Erase:
        """Erase a set of pages, not necessarily contiguous."""
        return cls(handle, pages)

    @classmethod
    def area(cls, handle: TargetHandle, start: int, length: int) -> Erase:
        """Erase every page overlapping [start, start + length).

        Due to the page-wise erase this will in general erase more than the area.
        """
        return cls(handle, pages_for_area(start, length))

    @property
    def page_list(self) -> list[Page]:
        return list(self._pages)

    def _advance(self) -> int:
        self._handle.erase_page(self._pages[self._progress])
        return self._progress + 1


class _Chunked(Operation):
    def __init__(self, handle: TargetHandle, buffer: memoryview, address: int, chunk_size: int) -> None:
        super().__init__(handle, len(buffer))
        self._buffer = buffer
        self._address = address
        self._chunk_size = chunk_size

    @property
    def address(self) -> int:
        return self._address

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def _advance(self) -> int:
        offset = self._progress
        chunk = self._buffer[offset:offset + self._chunk_size]
        self._transfer(self._address + offset, chunk)
        return offset + len(chunk)

    @abstractmethod
    def _transfer(self, address: int, chunk: memoryview) -> None:
        """Move one chunk to or from the target."""


class Program(_Chunked):
    """Flash program operation. The flash must have been erased beforehand."""

    @classmethod
    def at(cls, handle: TargetHandle, data: bytes | bytearray | memoryview, address: int) -> Program:
        return cls(handle, memoryview(data).cast("B"), address, handle.max_program_chunk_size)

    def _transfer(self, address: int, chunk: memoryview) -> None:
        self._handle.program_chunk(address, chunk)


class Read(_Chunked):
    """Memory read into a caller-supplied writable buffer."""

    @classmethod
    def at(cls, handle: TargetHandle, buffer: bytearray | memoryview, address: int) -> Read:
        view = memoryview(buffer).cast("B")
        if view.readonly:
            raise TypeError("Read buffer must be writable")
        return cls(handle, view, address, handle.max_read_chunk_size)

    def _transfer(self, address: int, chunk: memoryview) -> None:
        self._handle.read_chunk(address, chunk)
