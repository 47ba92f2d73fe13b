"""Domain-specific errors for punt."""

from __future__ import annotations

from enum import Enum


class PuntError(Exception):
    """Base error for punt."""


class ProfileValidationError(PuntError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(PuntError):
    """Raised when loading profile sources fails."""


class InvalidRequestError(PuntError):
    """Raised when a request is rejected before any USB transfer is made."""


class TargetNotFoundError(PuntError):
    """Raised when no connected target matches the selection criteria."""


class UnsupportedTargetError(PuntError):
    """Raised when a USB device does not identify as a bootloader target."""


class TooManyMatchesError(PuntError):
    """Raised when several targets are connected and none was chosen."""


class EraseFailure(Enum):
    PROHIBITED = "prohibited"
    VERIFY_FAILED = "verify-failed"
    UNKNOWN = "unknown"


_ERASE_FAILURES = {
    1: EraseFailure.PROHIBITED,
    2: EraseFailure.VERIFY_FAILED,
}


class EraseError(PuntError):
    """Raised when the target reports a non-zero page erase status."""

    def __init__(self, code: int, page: int | None = None) -> None:
        self.code = code
        self.page = page
        self.kind = _ERASE_FAILURES.get(code, EraseFailure.UNKNOWN)
        where = f" of page {page}" if page is not None else ""
        super().__init__(f"Flash erase{where} failed: {self.kind.value} (status {code})")


class VerificationError(PuntError):
    """Raised when the target's CRC does not match the local one."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Verification failed: expected CRC 0x{expected:08x}, target reported 0x{actual:08x}"
        )


class MalformedResponseError(PuntError):
    """Raised when a response packet cannot be decoded."""


class TransportError(PuntError):
    """Base transport error."""


class TransportTimeoutError(TransportError):
    """Raised when a USB transfer times out."""
