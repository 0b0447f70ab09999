"""libusb backend using pyusb."""

import errno
import logging
from collections.abc import Callable

import usb.core
import usb.util

from usbprint.usb.base import USB_CLASS_PRINTER, UsbDevice, UsbEndpoint, UsbInterface

logger = logging.getLogger(__name__)


def _device_id(dev) -> str:
    return f"{dev.bus:03d}:{dev.address:03d}"


def _read_product_name(dev) -> str:
    """Read the product string, which needs access rights on most hosts."""
    try:
        return usb.util.get_string(dev, dev.iProduct) or ""
    except (usb.core.USBError, ValueError, NotImplementedError):
        return ""


def _snapshot(dev) -> UsbDevice:
    """Convert a pyusb device into an immutable UsbDevice."""
    interfaces: dict[int, UsbInterface] = {}
    try:
        # Only the first configuration and alternate setting 0 are used
        cfg = next(iter(dev))
        for intf in cfg:
            if intf.bAlternateSetting != 0 or intf.bInterfaceNumber in interfaces:
                continue
            endpoints = tuple(
                UsbEndpoint(
                    address=ep.bEndpointAddress,
                    transfer_type=usb.util.endpoint_type(ep.bmAttributes),
                    direction=usb.util.endpoint_direction(ep.bEndpointAddress),
                )
                for ep in intf
            )
            interfaces[intf.bInterfaceNumber] = UsbInterface(
                index=intf.bInterfaceNumber,
                interface_class=intf.bInterfaceClass,
                endpoints=endpoints,
            )
    except (StopIteration, usb.core.USBError) as e:
        logger.debug(f"Could not read descriptors of {_device_id(dev)}: {e}")

    # Only printers get their string descriptors queried
    is_printer = dev.bDeviceClass == USB_CLASS_PRINTER or any(
        intf.interface_class == USB_CLASS_PRINTER for intf in interfaces.values()
    )
    return UsbDevice(
        device_id=_device_id(dev),
        vendor_id=dev.idVendor,
        product_id=dev.idProduct,
        device_class=dev.bDeviceClass,
        interfaces=tuple(interfaces[i] for i in sorted(interfaces)),
        name=_read_product_name(dev) if is_printer else "",
    )


class PyUsbHandle:
    """Open pyusb device implementing the DeviceHandle protocol."""

    def __init__(self, dev):
        self._dev = dev
        self._closed = False
        self._detached: list[int] = []

    def claim_interface(self, interface_index: int) -> bool:
        try:
            try:
                if self._dev.is_kernel_driver_active(interface_index):
                    # usblp grabs printer interfaces on Linux
                    self._dev.detach_kernel_driver(interface_index)
                    self._detached.append(interface_index)
            except NotImplementedError:
                pass

            try:
                self._dev.set_configuration()
            except usb.core.USBError as e:
                # Already configured by the OS
                logger.debug(f"set_configuration skipped: {e}")

            usb.util.claim_interface(self._dev, interface_index)
            return True
        except usb.core.USBError as e:
            logger.error(f"Could not claim interface {interface_index}: {e}")
            return False

    def bulk_transfer(self, endpoint_address: int, data: bytes, timeout_ms: int) -> int:
        if self._closed:
            return -1
        return self._dev.write(endpoint_address, data, timeout_ms)

    def release_interface(self, interface_index: int) -> None:
        usb.util.release_interface(self._dev, interface_index)
        if interface_index in self._detached:
            try:
                self._dev.attach_kernel_driver(interface_index)
            except (usb.core.USBError, NotImplementedError) as e:
                logger.debug(f"Could not reattach kernel driver: {e}")
            self._detached.remove(interface_index)

    def close(self) -> None:
        self._closed = True
        usb.util.dispose_resources(self._dev)

    def is_valid(self) -> bool:
        if self._closed:
            return False
        try:
            self._dev.get_active_configuration()
            return True
        except usb.core.USBError:
            return False


class PyUsbBackend:
    """USB capability backed by libusb through pyusb.

    Desktop hosts have no interactive permission prompt: access is granted
    when libusb can open the device (udev rules on Linux).
    """

    def __init__(self, vendor_id: int | None = None, product_id: int | None = None):
        """Initialize the backend.

        Args:
            vendor_id: Only enumerate devices from this vendor.
            product_id: Only enumerate devices with this product id.
        """
        self.vendor_id = vendor_id
        self.product_id = product_id

    def _find(self, **match):
        if self.vendor_id is not None:
            match["idVendor"] = self.vendor_id
        if self.product_id is not None:
            match["idProduct"] = self.product_id
        return usb.core.find(find_all=True, **match)

    def _lookup(self, device: UsbDevice):
        bus, address = (int(part) for part in device.device_id.split(":"))
        for dev in self._find(bus=bus, address=address):
            return dev
        return None

    def list_devices(self) -> list[UsbDevice]:
        try:
            return [_snapshot(dev) for dev in self._find()]
        except usb.core.NoBackendError as err:
            raise OSError("No libusb backend available - is libusb installed?") from err

    def has_permission(self, device: UsbDevice) -> bool:
        dev = self._lookup(device)
        if dev is None:
            return False
        try:
            dev.get_active_configuration()
        except usb.core.USBError as e:
            if e.errno == errno.EACCES:
                return False
        finally:
            usb.util.dispose_resources(dev)
        return True

    def request_permission(self, device: UsbDevice, callback: Callable[[bool], None]) -> None:
        granted = self.has_permission(device)
        if not granted:
            logger.warning(
                f"No access to {device.label}. Add a udev rule granting access "
                f"to {device.vendor_id:04x}:{device.product_id:04x}."
            )
        callback(granted)

    def open(self, device: UsbDevice) -> PyUsbHandle:
        dev = self._lookup(device)
        if dev is None:
            raise OSError(errno.ENODEV, f"Device {device.device_id} is gone")
        return PyUsbHandle(dev)
