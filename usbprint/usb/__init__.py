"""USB capability abstraction.

The printer core only talks to the UsbBackend protocol. Use get_backend()
to get the libusb implementation for the current host.
"""

from usbprint.usb.base import (
    USB_CLASS_PRINTER,
    DeviceHandle,
    UsbBackend,
    UsbDevice,
    UsbEndpoint,
    UsbInterface,
)


def get_backend(vendor_id: int | None = None, product_id: int | None = None) -> UsbBackend:
    """Factory function that returns the host USB backend.

    Args:
        vendor_id: Optional vendor filter.
        product_id: Optional product filter.

    Returns:
        UsbBackend: libusb backend instance.
    """
    from usbprint.usb.pyusb_backend import PyUsbBackend

    return PyUsbBackend(vendor_id=vendor_id, product_id=product_id)


__all__ = [
    "USB_CLASS_PRINTER",
    "DeviceHandle",
    "UsbBackend",
    "UsbDevice",
    "UsbEndpoint",
    "UsbInterface",
    "get_backend",
]
