"""Device-to-profile matching and target selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from punt.core.errors import (
    TargetNotFoundError,
    TooManyMatchesError,
    TransportError,
    UnsupportedTargetError,
)
from punt.core.model import TargetInfo, TargetProfile
from punt.transports.base import UsbDevice

LOGGER = logging.getLogger(__name__)


def ids_match(device: UsbDevice, profile: TargetProfile) -> bool:
    # The identifier pair is shared with unrelated devices, so this alone is
    # never enough to talk to a device.
    return device.vendor_id == profile.match.vendor_id and device.product_id == profile.match.product_id


def probe_serial(device: UsbDevice, profile: TargetProfile) -> str:
    """Return the serial number of a device that identifies as the profile's bootloader."""
    where = f"{device.bus:03d}:{device.address:03d}"
    if not ids_match(device, profile):
        raise UnsupportedTargetError(
            f"Device {where} ({device.vendor_id:04x}:{device.product_id:04x}) "
            f"is not a '{profile.id}' target"
        )

    strings = device.descriptor_strings(timeout_ms=profile.transport.timeout_ms)
    if strings.manufacturer != profile.match.manufacturer or strings.product != profile.match.product:
        raise UnsupportedTargetError(
            f"Device {where} identifies as {strings.manufacturer!r} / {strings.product!r}, "
            f"not as a '{profile.id}' target"
        )
    return (strings.serial or "").rstrip("\x00")


def find_targets(devices: Iterable[UsbDevice], profiles: Iterable[TargetProfile]) -> list[TargetInfo]:
    profiles = list(profiles)
    targets: list[TargetInfo] = []
    probe_errors: list[str] = []

    for device in devices:
        for profile in profiles:
            if not ids_match(device, profile):
                continue
            try:
                serial = probe_serial(device, profile)
            except UnsupportedTargetError as exc:
                LOGGER.debug("Skipping device: %s", exc)
                continue
            except TransportError as exc:
                probe_errors.append(f"{device.bus:03d}:{device.address:03d} -> {exc}")
                continue
            targets.append(
                TargetInfo(bus=device.bus, address=device.address, serial=serial, profile_id=profile.id)
            )
            break

    if probe_errors:
        joined = " | ".join(probe_errors)
        if not targets:
            raise TransportError(
                f"Could not identify candidate devices. Check USB permissions. Details: {joined}"
            )
        LOGGER.warning("Some candidate devices could not be identified: %s", joined)

    return targets


def pick_target(targets: list[TargetInfo], serial: str | None = None) -> TargetInfo:
    """Select one target.

    With a serial number, the target with that serial is returned even if
    others are connected. Without one, exactly one target must be connected.
    """
    if serial is not None:
        for target in targets:
            if target.serial == serial:
                return target
        raise TargetNotFoundError(f"No target with serial number '{serial}' found")

    if not targets:
        raise TargetNotFoundError("No target found. Ensure the device is in bootloader mode.")
    if len(targets) > 1:
        candidate_desc = ", ".join(str(t) for t in targets)
        raise TooManyMatchesError(
            f"Multiple targets found: {candidate_desc}. Use --serial to choose one."
        )
    return targets[0]
