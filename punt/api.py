"""Stable public API for building tooling on top of punt.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.

Example::

    from punt.api import Context

    context = Context()
    with context.open(context.pick_target()) as target:
        base = target.bootloader_info.application_base
        target.erase_area(base, len(image)).execute()
        target.program_at(image, base).execute()
        target.verify(image, base)
"""

from __future__ import annotations

from punt.core.checksum import crc32
from punt.core.context import Context
from punt.core.errors import (
    EraseError,
    EraseFailure,
    InvalidRequestError,
    MalformedResponseError,
    ProfileLoadError,
    ProfileValidationError,
    PuntError,
    TargetNotFoundError,
    TooManyMatchesError,
    TransportError,
    TransportTimeoutError,
    UnsupportedTargetError,
    VerificationError,
)
from punt.core.flash import FLASH_BASE, PAGE_SIZE, Page, pages_for_area
from punt.core.handle import TargetHandle
from punt.core.model import (
    BootloaderInfo,
    DescriptorStrings,
    MatchRules,
    TargetInfo,
    TargetProfile,
    TransportSpec,
    Version,
)
from punt.core.operation import Erase, Operation, Program, Read
from punt.core.target import Target
from punt.transports.base import UsbBackend, UsbConnection, UsbDevice

__all__ = [
    "PuntError",
    "EraseError",
    "EraseFailure",
    "InvalidRequestError",
    "MalformedResponseError",
    "ProfileLoadError",
    "ProfileValidationError",
    "TargetNotFoundError",
    "TooManyMatchesError",
    "TransportError",
    "TransportTimeoutError",
    "UnsupportedTargetError",
    "VerificationError",
    "BootloaderInfo",
    "DescriptorStrings",
    "MatchRules",
    "TargetInfo",
    "TargetProfile",
    "TransportSpec",
    "Version",
    "FLASH_BASE",
    "PAGE_SIZE",
    "Page",
    "pages_for_area",
    "crc32",
    "Context",
    "Target",
    "TargetHandle",
    "Operation",
    "Erase",
    "Program",
    "Read",
    "UsbBackend",
    "UsbConnection",
    "UsbDevice",
]
