"""Pytest configuration and fixtures.

Provides a scripted USB backend that behaves like an attached ESC/POS
printer, so the connection state machine can be driven without hardware.
"""

import threading
from collections.abc import Callable, Generator

import pytest

from usbprint.config import UsbPrintConfig
from usbprint.manager import PrinterManager
from usbprint.usb.base import (
    DIRECTION_IN,
    DIRECTION_OUT,
    TRANSFER_TYPE_BULK,
    USB_CLASS_PRINTER,
    UsbDevice,
    UsbEndpoint,
    UsbInterface,
)

BULK_OUT = UsbEndpoint(address=0x01, transfer_type=TRANSFER_TYPE_BULK, direction=DIRECTION_OUT)
BULK_IN = UsbEndpoint(address=0x82, transfer_type=TRANSFER_TYPE_BULK, direction=DIRECTION_IN)


class FakeHandle:
    """Open device handle recording everything written to it."""

    def __init__(self, device_id: str, claim_ok: bool = True):
        self.device_id = device_id
        self.claim_ok = claim_ok
        self.writes: list[bytes] = []
        self.claimed: set[int] = set()
        self.released: list[int] = []
        self.close_calls = 0
        self.fd = 5
        # Scripted transfer behaviour
        self.fail_with: Exception | None = None
        self.result_override: int | None = None
        self.gate: threading.Event | None = None
        self.in_transfer = threading.Event()

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    @property
    def written(self) -> bytes:
        return b"".join(self.writes)

    def claim_interface(self, interface_index: int) -> bool:
        if not self.claim_ok:
            return False
        self.claimed.add(interface_index)
        return True

    def bulk_transfer(self, endpoint_address: int, data: bytes, timeout_ms: int) -> int:
        self.in_transfer.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail_with is not None:
            raise self.fail_with
        if self.result_override is not None:
            return self.result_override
        self.writes.append(bytes(data))
        return len(data)

    def release_interface(self, interface_index: int) -> None:
        self.released.append(interface_index)

    def close(self) -> None:
        self.close_calls += 1

    def is_valid(self) -> bool:
        return not self.closed and self.fd >= 0


class FakeUsbBackend:
    """USB backend with scripted devices and permissions.

    Permission requests for devices without a grant are recorded and
    resolved by the test through resolve_permission().
    """

    def __init__(self):
        self.devices: dict[str, UsbDevice] = {}
        self.permitted: set[str] = set()
        self.permission_requests: list[tuple[UsbDevice, Callable[[bool], None]]] = []
        self.handles: list[FakeHandle] = []
        self.claim_ok = True
        self.enumeration_error: OSError | None = None

    @property
    def last_handle(self) -> FakeHandle:
        return self.handles[-1]

    def attach(self, device: UsbDevice, granted: bool = True) -> UsbDevice:
        self.devices[device.device_id] = device
        if granted:
            self.permitted.add(device.device_id)
        return device

    def detach(self, device_id: str) -> None:
        self.devices.pop(device_id, None)
        self.permitted.discard(device_id)

    def resolve_permission(self, granted: bool) -> None:
        device, callback = self.permission_requests.pop(0)
        if granted:
            self.permitted.add(device.device_id)
        callback(granted)

    def list_devices(self) -> list[UsbDevice]:
        if self.enumeration_error is not None:
            raise self.enumeration_error
        return list(self.devices.values())

    def has_permission(self, device: UsbDevice) -> bool:
        return device.device_id in self.permitted

    def request_permission(self, device: UsbDevice, callback: Callable[[bool], None]) -> None:
        self.permission_requests.append((device, callback))

    def open(self, device: UsbDevice) -> FakeHandle:
        if device.device_id not in self.devices:
            raise OSError(19, f"No such device: {device.device_id}")
        handle = FakeHandle(device.device_id, claim_ok=self.claim_ok)
        self.handles.append(handle)
        return handle


def build_device(
    device_id: str = "001:004",
    device_class: int = USB_CLASS_PRINTER,
    interface_class: int = USB_CLASS_PRINTER,
    endpoints: tuple[UsbEndpoint, ...] = (BULK_OUT, BULK_IN),
    vendor_id: int = 0x0416,
    product_id: int = 0x5011,
    with_interface: bool = True,
) -> UsbDevice:
    interfaces = (
        (UsbInterface(index=0, interface_class=interface_class, endpoints=endpoints),)
        if with_interface
        else ()
    )
    return UsbDevice(
        device_id=device_id,
        vendor_id=vendor_id,
        product_id=product_id,
        device_class=device_class,
        interfaces=interfaces,
        name="POS58 Printer",
    )


@pytest.fixture
def make_device() -> Callable[..., UsbDevice]:
    """Factory for UsbDevice snapshots (printer class by default)."""
    return build_device


@pytest.fixture
def backend() -> FakeUsbBackend:
    """Empty fake USB bus."""
    return FakeUsbBackend()


@pytest.fixture
def printer(backend: FakeUsbBackend) -> UsbDevice:
    """A printer attached with permission already granted."""
    return backend.attach(build_device())


@pytest.fixture
def config() -> UsbPrintConfig:
    """Configuration with short monitor intervals."""
    return UsbPrintConfig(health_check_interval=0.05, reconnect_interval=0.1)


@pytest.fixture
def manager(backend: FakeUsbBackend, config: UsbPrintConfig) -> Generator[PrinterManager, None, None]:
    """Manager that is not started (monitor thread not running)."""
    mgr = PrinterManager(backend, config)
    yield mgr
    mgr.close()


@pytest.fixture
def events(manager: PrinterManager) -> list[str]:
    """Events emitted by the manager, in order."""
    received: list[str] = []
    manager.subscribe(received.append)
    return received
