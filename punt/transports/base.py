"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from punt.core.model import DescriptorStrings


class UsbConnection(Protocol):
    def endpoint_sizes(self) -> tuple[int, int]:
        """Return (bulk-in, bulk-out) max packet sizes of the first interface."""

    def claim_interface(self, interface: int) -> None: ...

    def release_interface(self, interface: int) -> None: ...

    def control_out(
        self,
        request_type: int,
        request: int,
        value: int,
        index: int,
        *,
        timeout_ms: int,
    ) -> None:
        """Issue a zero-length host-to-device control transfer."""

    def bulk_write(self, endpoint: int, data: bytes, *, timeout_ms: int) -> int:
        """Write data to a bulk-out endpoint and return the number of bytes sent."""

    def bulk_read(self, endpoint: int, length: int, *, timeout_ms: int) -> bytes:
        """Read up to length bytes from a bulk-in endpoint."""

    def close(self) -> None: ...


class UsbDevice(Protocol):
    bus: int
    address: int
    vendor_id: int
    product_id: int

    def descriptor_strings(
        self,
        language: int | None = None,
        *,
        timeout_ms: int = 500,
    ) -> DescriptorStrings:
        """Read manufacturer, product, and serial strings in the given language."""

    def open(self) -> UsbConnection:
        """Open (and reset) the device for exclusive use."""


class UsbBackend(Protocol):
    def devices(self) -> list[UsbDevice]:
        """Enumerate all connected USB devices."""
