"""Abstract USB capability consumed by the printer core."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

# USB class codes and endpoint attributes (USB 2.0, chapter 9)
USB_CLASS_PRINTER = 7
TRANSFER_TYPE_BULK = 2
DIRECTION_OUT = 0x00
DIRECTION_IN = 0x80


@dataclass(frozen=True)
class UsbEndpoint:
    """Endpoint descriptor snapshot."""

    address: int
    transfer_type: int
    direction: int

    @property
    def is_bulk_out(self) -> bool:
        return self.transfer_type == TRANSFER_TYPE_BULK and self.direction == DIRECTION_OUT


@dataclass(frozen=True)
class UsbInterface:
    """Interface descriptor snapshot."""

    index: int
    interface_class: int
    endpoints: tuple[UsbEndpoint, ...] = ()


@dataclass(frozen=True)
class UsbDevice:
    """An attached USB device as seen by one enumeration pass.

    device_id identifies the attachment instance, not the model: replugging
    the same printer may yield a different id.
    """

    device_id: str
    vendor_id: int
    product_id: int
    device_class: int
    interfaces: tuple[UsbInterface, ...] = ()
    name: str = ""

    @property
    def label(self) -> str:
        return f"{self.name or self.device_id} [{self.vendor_id:04x}:{self.product_id:04x}]"


@runtime_checkable
class DeviceHandle(Protocol):
    """An open device, as returned by UsbBackend.open()."""

    def claim_interface(self, interface_index: int) -> bool:
        """Claim an interface for exclusive use.

        Returns:
            bool: True if the interface was claimed.
        """
        ...

    def bulk_transfer(self, endpoint_address: int, data: bytes, timeout_ms: int) -> int:
        """Write data to a bulk endpoint.

        Returns:
            int: Bytes written, or a negative value on failure.

        Raises:
            OSError: On I/O faults and timeouts.
        """
        ...

    def release_interface(self, interface_index: int) -> None:
        """Release a previously claimed interface."""
        ...

    def close(self) -> None:
        """Close the handle."""
        ...

    def is_valid(self) -> bool:
        """Check if the underlying OS handle is still usable.

        Returns:
            bool: False once the handle is closed or its descriptor is gone.
        """
        ...


@runtime_checkable
class UsbBackend(Protocol):
    """Protocol for USB enumeration, permission and device access.

    Any transport exposing printer-class devices with bulk endpoints can
    satisfy this protocol.
    """

    def list_devices(self) -> list[UsbDevice]:
        """Enumerate currently attached devices."""
        ...

    def has_permission(self, device: UsbDevice) -> bool:
        """Check if this process may already open the device."""
        ...

    def request_permission(self, device: UsbDevice, callback: Callable[[bool], None]) -> None:
        """Ask the OS for access to a device.

        The callback receives the grant outcome. It may be invoked
        synchronously or later from another thread.
        """
        ...

    def open(self, device: UsbDevice) -> DeviceHandle:
        """Open a device.

        Raises:
            OSError: If the device cannot be opened.
        """
        ...
