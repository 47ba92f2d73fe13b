"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import logging

from punt.core import discovery
from punt.core.errors import TargetNotFoundError
from punt.core.handle import TargetHandle
from punt.core.model import TargetInfo, TargetProfile
from punt.core.profile_loader import load_profiles
from punt.core.target import Target
from punt.transports.base import UsbBackend

LOGGER = logging.getLogger(__name__)


class Context:
    """Finds and opens bootloader targets on one USB backend.

    Only targets already in bootloader mode can be found; how a running
    application enters the bootloader is device specific.
    """

    def __init__(
        self,
        *,
        backend: UsbBackend | None = None,
        profiles: dict[str, TargetProfile] | None = None,
    ) -> None:
        if profiles is None:
            loaded = load_profiles()
            self.profiles = loaded.profiles
            self.load_warnings = loaded.warnings
        else:
            self.profiles = dict(profiles)
            self.load_warnings = ()
        if backend is None:
            from punt.transports.pyusb_backend import PyUSBBackend

            backend = PyUSBBackend()
        self.backend = backend

    def list_profiles(self) -> list[TargetProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def profile(self, profile_id: str) -> TargetProfile:
        profile = self.profiles.get(profile_id)
        if profile is None:
            raise TargetNotFoundError(f"Unknown profile '{profile_id}'")
        return profile

    def find_targets(self, profile_id: str | None = None) -> list[TargetInfo]:
        """Return all connected targets in bootloader mode."""
        profiles = [self.profile(profile_id)] if profile_id else self.list_profiles()
        targets = discovery.find_targets(self.backend.devices(), profiles)
        LOGGER.debug("Found %d target(s)", len(targets))
        return targets

    def pick_target(self, serial: str | None = None, profile_id: str | None = None) -> TargetInfo:
        return discovery.pick_target(self.find_targets(profile_id), serial)

    def open(self, target: TargetInfo) -> Target:
        """Connect to a target found earlier and fetch its bootloader info."""
        profile = self.profile(target.profile_id)
        for device in self.backend.devices():
            if device.bus != target.bus or device.address != target.address:
                continue
            # The device at this address may have changed since discovery.
            serial = discovery.probe_serial(device, profile)
            if serial != target.serial:
                break
            connection = device.open()
            try:
                handle = TargetHandle(connection, profile)
                bootloader_info = handle.bootloader_info()
            except Exception:
                connection.close()
                raise
            LOGGER.debug("Opened %s", target)
            return Target(target, handle, bootloader_info)
        raise TargetNotFoundError(f"Target {target} is no longer connected")
