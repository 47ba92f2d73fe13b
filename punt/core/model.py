"""Core data models used across discovery, session, and CLI."""

from __future__ import annotations

from dataclasses import dataclass

from punt.core.flash import Page


@dataclass(frozen=True)
class MatchRules:
    vendor_id: int
    product_id: int
    manufacturer: str
    product: str


@dataclass(frozen=True)
class TransportSpec:
    interface: int = 0
    endpoint_out: int = 0x02
    endpoint_in: int = 0x81
    timeout_ms: int = 500


@dataclass(frozen=True)
class TargetProfile:
    id: str
    name: str
    match: MatchRules
    transport: TransportSpec


@dataclass(frozen=True)
class DescriptorStrings:
    manufacturer: str | None
    product: str | None
    serial: str | None


@dataclass(frozen=True)
class TargetInfo:
    """Everything needed to find a target again on the bus."""

    bus: int
    address: int
    serial: str
    profile_id: str

    def __str__(self) -> str:
        return f"{self.bus:03d}:{self.address:03d} {self.serial} ({self.profile_id})"


@dataclass(frozen=True)
class Version:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class BootloaderInfo:
    """Information the bootloader reports about itself and the application flash."""

    build_number: int
    build_date: str
    application_base: int
    application_size: int
    version: Version | None = None
    identifier: str | None = None

    @property
    def application_end(self) -> int:
        """First address after the application flash."""
        return self.application_base + self.application_size

    def application_pages(self) -> tuple[Page, Page]:
        """First and last page of the application flash."""
        return (
            Page.from_address(self.application_base),
            Page.from_address(self.application_end - 1),
        )

    def contains(self, start: int, length: int) -> bool:
        return self.application_base <= start and start + length <= self.application_end

    def contains_page(self, page: Page) -> bool:
        """Whether the page overlaps the application flash."""
        return page.begin() < self.application_end and page.end() >= self.application_base

    def describe(self) -> list[str]:
        lines = []
        if self.version is not None:
            lines.append(f"Firmware version: {self.version}")
        lines.append(f"Firmware build number: {self.build_number}")
        lines.append(f"Firmware build date: {self.build_date}")
        if self.identifier is not None:
            lines.append(f"Bootloader identifier: {self.identifier}")
        lines.append(f"Application flash base address: 0x{self.application_base:08x}")
        lines.append(f"Application flash size: {self.application_size // 1024} KiB")
        return lines
