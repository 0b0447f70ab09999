"""Printer discovery and session setup."""

import logging

from usbprint.errors import EndpointNotFoundError, InterfaceClaimFailedError
from usbprint.session import DEFAULT_TRANSFER_TIMEOUT_MS, PrinterIdentity, UsbSession
from usbprint.usb.base import USB_CLASS_PRINTER, UsbBackend, UsbDevice, UsbInterface

logger = logging.getLogger(__name__)


def is_printer(device: UsbDevice) -> bool:
    """Check if a device is a USB printer.

    Returns:
        bool: True if the device class or any interface class is Printer.
    """
    if device.device_class == USB_CLASS_PRINTER:
        return True
    return any(intf.interface_class == USB_CLASS_PRINTER for intf in device.interfaces)


def select_interface(device: UsbDevice) -> UsbInterface:
    """Pick the printer interface, falling back to the first interface.

    Raises:
        InterfaceClaimFailedError: If the device has no interfaces.
    """
    for intf in device.interfaces:
        if intf.interface_class == USB_CLASS_PRINTER:
            return intf
    if device.interfaces:
        return device.interfaces[0]
    raise InterfaceClaimFailedError(f"No suitable interface found on {device.label}")


def resolve_identity(device: UsbDevice) -> PrinterIdentity:
    """Resolve the interface and bulk OUT endpoint used to print.

    Raises:
        InterfaceClaimFailedError: If there is no interface.
        EndpointNotFoundError: If the interface has no bulk OUT endpoint.
    """
    intf = select_interface(device)
    endpoint = next((ep for ep in intf.endpoints if ep.is_bulk_out), None)
    if endpoint is None:
        raise EndpointNotFoundError(
            f"No output endpoint found on interface {intf.index} of {device.label}"
        )
    return PrinterIdentity(
        device_id=device.device_id,
        vendor_id=device.vendor_id,
        product_id=device.product_id,
        interface_index=intf.index,
        endpoint_address=endpoint.address,
    )


class PrinterDiscovery:
    """Finds attached printers and opens sessions to them."""

    def __init__(self, backend: UsbBackend, timeout_ms: int = DEFAULT_TRANSFER_TIMEOUT_MS):
        """Initialize discovery.

        Args:
            backend: USB capability.
            timeout_ms: Bulk transfer timeout for opened sessions.
        """
        self.backend = backend
        self.timeout_ms = timeout_ms

    def list_printers(self) -> list[UsbDevice]:
        """List all attached printer-class devices."""
        devices = self.backend.list_devices()
        logger.debug(f"Found {len(devices)} USB devices")
        return [device for device in devices if is_printer(device)]

    def scan(self) -> UsbDevice | None:
        """Return the first attached printer, if any."""
        for device in self.list_printers():
            logger.debug(f"Printer found: {device.label}")
            return device
        return None

    def is_present(self, device_id: str) -> bool:
        """Check if a device is still in the enumeration."""
        return any(device.device_id == device_id for device in self.backend.list_devices())

    def open_session(self, device: UsbDevice, identity: PrinterIdentity | None = None) -> UsbSession:
        """Open a device, claim its printer interface and wrap it in a session.

        Args:
            device: Printer to open.
            identity: Previously resolved identity (resolved if omitted).

        Returns:
            UsbSession: Live session.

        Raises:
            InterfaceClaimFailedError: If there is no interface, it cannot
                be claimed, or the device cannot be opened.
            EndpointNotFoundError: If there is no bulk OUT endpoint.
        """
        identity = identity or resolve_identity(device)

        try:
            handle = self.backend.open(device)
        except OSError as err:
            raise InterfaceClaimFailedError(f"Failed to open USB device: {err}") from err

        try:
            claimed = handle.claim_interface(identity.interface_index)
        except OSError as err:
            handle.close()
            raise InterfaceClaimFailedError(f"Failed to claim interface: {err}") from err

        if not claimed:
            handle.close()
            raise InterfaceClaimFailedError(
                f"Failed to claim interface {identity.interface_index} on {device.label}"
            )

        logger.info(f"Opened session to {identity}")
        return UsbSession(identity, handle, timeout_ms=self.timeout_ms)
