"""USB transport implementation using pyusb."""

from __future__ import annotations

import logging

import usb.core
import usb.util

from punt.core.errors import TransportError, TransportTimeoutError
from punt.core.model import DescriptorStrings

LOGGER = logging.getLogger(__name__)


def _transport_error(action: str, exc: Exception) -> TransportError:
    if isinstance(exc, usb.core.USBTimeoutError):
        return TransportTimeoutError(f"USB {action} timed out")
    return TransportError(f"USB {action} failed: {exc}")


class PyUSBConnection:
    def __init__(self, device: usb.core.Device) -> None:
        self._device = device

    def endpoint_sizes(self) -> tuple[int, int]:
        try:
            try:
                configuration = self._device.get_active_configuration()
            except usb.core.USBError:
                self._device.set_configuration()
                configuration = self._device.get_active_configuration()
            interface = configuration[(0, 0)]
            endpoints = list(interface.endpoints())[:2]
        except (usb.core.USBError, IndexError, KeyError) as exc:
            raise TransportError(f"Could not read endpoint descriptors: {exc}") from exc

        in_size = 0
        out_size = 0
        for endpoint in endpoints:
            if usb.util.endpoint_direction(endpoint.bEndpointAddress) == usb.util.ENDPOINT_IN:
                in_size = endpoint.wMaxPacketSize
            else:
                out_size = endpoint.wMaxPacketSize
        return in_size, out_size

    def claim_interface(self, interface: int) -> None:
        try:
            usb.util.claim_interface(self._device, interface)
        except usb.core.USBError as exc:
            raise _transport_error(f"claim of interface {interface}", exc) from exc

    def release_interface(self, interface: int) -> None:
        try:
            usb.util.release_interface(self._device, interface)
        except usb.core.USBError as exc:
            raise _transport_error(f"release of interface {interface}", exc) from exc

    def control_out(
        self,
        request_type: int,
        request: int,
        value: int,
        index: int,
        *,
        timeout_ms: int,
    ) -> None:
        try:
            self._device.ctrl_transfer(
                bmRequestType=request_type,
                bRequest=request,
                wValue=value,
                wIndex=index,
                data_or_wLength=None,
                timeout=timeout_ms,
            )
        except usb.core.USBError as exc:
            raise _transport_error(f"control transfer 0x{request:02x}", exc) from exc

    def bulk_write(self, endpoint: int, data: bytes, *, timeout_ms: int) -> int:
        try:
            return self._device.write(endpoint, data, timeout=timeout_ms)
        except usb.core.USBError as exc:
            raise _transport_error(f"bulk write to 0x{endpoint:02x}", exc) from exc

    def bulk_read(self, endpoint: int, length: int, *, timeout_ms: int) -> bytes:
        try:
            return bytes(self._device.read(endpoint, length, timeout=timeout_ms))
        except usb.core.USBError as exc:
            raise _transport_error(f"bulk read from 0x{endpoint:02x}", exc) from exc

    def close(self) -> None:
        usb.util.dispose_resources(self._device)
        LOGGER.debug("Released USB resources")


class PyUSBDevice:
    def __init__(self, device: usb.core.Device) -> None:
        self._device = device
        self.bus = device.bus
        self.address = device.address
        self.vendor_id = device.idVendor
        self.product_id = device.idProduct

    def descriptor_strings(
        self,
        language: int | None = None,
        *,
        timeout_ms: int = 500,
    ) -> DescriptorStrings:
        device = self._device
        device.default_timeout = timeout_ms
        try:
            if language is None:
                languages = device.langids
                if not languages:
                    raise TransportError(
                        f"Device {self.bus:03d}:{self.address:03d} reports no string languages"
                    )
                language = languages[0]
            return DescriptorStrings(
                manufacturer=self._read_string(device.iManufacturer, language),
                product=self._read_string(device.iProduct, language),
                serial=self._read_string(device.iSerialNumber, language),
            )
        except (usb.core.USBError, ValueError) as exc:
            raise _transport_error(
                f"string descriptor read from {self.bus:03d}:{self.address:03d}", exc
            ) from exc

    def _read_string(self, index: int, language: int) -> str | None:
        if not index:
            return None
        return usb.util.get_string(self._device, index, language)

    def open(self) -> PyUSBConnection:
        try:
            self._device.reset()
        except usb.core.USBError as exc:
            raise _transport_error(f"reset of {self.bus:03d}:{self.address:03d}", exc) from exc
        return PyUSBConnection(self._device)


class PyUSBBackend:
    def devices(self) -> list[PyUSBDevice]:
        try:
            return [PyUSBDevice(device) for device in usb.core.find(find_all=True)]
        except usb.core.NoBackendError as exc:
            raise TransportError(
                "No libusb backend available. Install libusb and retry."
            ) from exc
        except usb.core.USBError as exc:
            raise _transport_error("device enumeration", exc) from exc
