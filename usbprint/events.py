"""Printer events: inbound host signals and outbound notifications."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from usbprint.usb.base import UsbDevice

logger = logging.getLogger(__name__)

PRINTER_CONNECTED = "printerConnected"
PRINTER_DISCONNECTED = "printerDisconnected"


# Inbound signals delivered by the host (hotplug, permission dialogs)


@dataclass(frozen=True)
class DeviceAttached:
    device: UsbDevice


@dataclass(frozen=True)
class DeviceDetached:
    device_id: str


@dataclass(frozen=True)
class PermissionResult:
    device: UsbDevice
    granted: bool


HostEvent = DeviceAttached | DeviceDetached | PermissionResult

Listener = Callable[[str], None]


class EventNotifier:
    """Delivers printerConnected / printerDisconnected to listeners.

    Only transitions are emitted: reporting the same classification twice
    in a row is a no-op unless forced. The first report is always emitted.
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._last: str | None = None

    @property
    def last_event(self) -> str | None:
        return self._last

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def notify(self, connected: bool, force: bool = False) -> bool:
        """Report the current connection classification.

        Args:
            connected: Whether a printer is connected.
            force: Emit even if the classification did not change, e.g. when
                   a permission request is denied while already disconnected.

        Returns:
            bool: True if an event was emitted.
        """
        event = PRINTER_CONNECTED if connected else PRINTER_DISCONNECTED
        with self._lock:
            if event == self._last and not force:
                return False
            self._last = event
            listeners = list(self._listeners)

        logger.info(f"Event sent: {event}")
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.exception(f"Event listener failed: {e}")
        return True
