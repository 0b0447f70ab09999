"""Printer manager - owns the connection state and the print API."""

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from usbprint.config import UsbPrintConfig, normalize_width
from usbprint.discovery import PrinterDiscovery, is_printer, resolve_identity
from usbprint.errors import DeviceNotFoundError, PermissionDeniedError, PrinterError
from usbprint.escpos import (
    JobKind,
    PrintJob,
    build_cut,
    build_raster,
    build_test_receipt,
    build_text,
    decode_image,
)
from usbprint.events import (
    DeviceAttached,
    DeviceDetached,
    EventNotifier,
    HostEvent,
    Listener,
    PermissionResult,
)
from usbprint.monitor import ConnectionMonitor
from usbprint.session import UsbSession
from usbprint.state import (
    DISCONNECTED,
    RECONNECTING,
    Connected,
    ConnectionState,
    Disconnected,
    PermissionPending,
    Reconnecting,
)
from usbprint.usb.base import UsbBackend, UsbDevice

logger = logging.getLogger(__name__)


class PrinterManager:
    """Single logical connection to a USB receipt printer.

    The manager:
    1. Finds printer-class devices and negotiates access
    2. Holds the one live session while connected
    3. Tears the session down on transfer failures, detach signals and
       failed health checks
    4. Reconnects automatically through the connection monitor
    5. Notifies listeners of connected/disconnected transitions

    Every state read and write, and the session lifecycle, goes through
    self._lock.
    """

    def __init__(
        self,
        backend: UsbBackend,
        config: UsbPrintConfig | None = None,
        max_workers: int = 2,
    ):
        """Initialize the manager.

        Args:
            backend: USB capability.
            config: Configuration (defaults if not provided).
            max_workers: Threads for print requests.
        """
        self.config = config or UsbPrintConfig()
        self.discovery = PrinterDiscovery(backend, timeout_ms=self.config.transfer_timeout_ms)
        self.notifier = EventNotifier()
        self.events: queue.Queue[HostEvent] = queue.Queue()
        self.monitor = ConnectionMonitor(
            self,
            health_interval=self.config.health_check_interval,
            reconnect_interval=self.config.reconnect_interval,
        )

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._state: ConnectionState = DISCONNECTED
        self.last_error: PrinterError | None = None
        self._printer_width = normalize_width(self.config.printer_width)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="usbprint")
        self._closed = False

    def __enter__(self) -> "PrinterManager":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def printer_width(self) -> int:
        return self._printer_width

    def is_connected(self) -> bool:
        """Snapshot of whether a printer session is live."""
        with self._lock:
            return self._state.connected

    def wait_connected(self, timeout: float) -> bool:
        """Block until a printer is connected or the timeout expires.

        Returns:
            bool: True if connected.
        """
        with self._changed:
            return self._changed.wait_for(lambda: self._state.connected, timeout)

    def subscribe(self, listener: Listener) -> None:
        self.notifier.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self.notifier.unsubscribe(listener)

    def start(self) -> None:
        """Run the initial scan and start the connection monitor."""
        logger.info("Scanning for connected printers...")
        try:
            device = self.discovery.scan()
        except OSError as e:
            logger.error(f"USB enumeration failed: {e}")
            device = None

        if device is not None:
            self.request_access(device)
        else:
            logger.info("No printer found")
            with self._lock:
                self.notifier.notify(self._state.connected)

        self.monitor.start()

    def close(self) -> None:
        """Stop the monitor, release the printer and shut down workers."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self.monitor.stop()
        self._executor.shutdown(wait=True)
        with self._lock:
            session = self._state.session
            if session is not None:
                self._teardown(session, "manager closed")
            else:
                self._state = DISCONNECTED
        logger.info("Printer manager closed")

    # State transitions

    def _set_disconnected(self, error: PrinterError | None = None, force: bool = False) -> None:
        if error is not None:
            self.last_error = error
        self._state = DISCONNECTED
        self.notifier.notify(False, force=force)
        self._changed.notify_all()

    def _teardown(self, session: UsbSession, reason: str) -> bool:
        """Tear down a session if it is still the live one.

        Returns:
            bool: True if this call performed the teardown.
        """
        with self._lock:
            if self._state.session is not session:
                logger.debug(f"Ignoring stale teardown ({reason})")
                return False
            logger.warning(f"Printer disconnected: {reason}")
            session.close()
            self._set_disconnected()
            return True

    def request_access(self, device: UsbDevice) -> bool:
        """Request access to a printer and connect if granted.

        Only one request may be in flight. Requests made while connected or
        while another request is pending are ignored.

        Args:
            device: Printer-class device.

        Returns:
            bool: True if the request was started.
        """
        with self._lock:
            if self._closed or not isinstance(self._state, (Disconnected, Reconnecting)):
                logger.debug(f"Access request for {device.label} ignored in {self._state}")
                return False
            try:
                identity = resolve_identity(device)
            except PrinterError as e:
                logger.error(f"Failed to connect printer: {e}")
                self._set_disconnected(e)
                return False
            self._state = PermissionPending(identity)

        try:
            if self.discovery.backend.has_permission(device):
                logger.debug(f"Permission already granted for {device.label}")
                self._complete_access(device, granted=True)
            else:
                logger.info(f"Requesting permission for {device.label}")
                self.discovery.backend.request_permission(
                    device,
                    lambda granted: self.post_event(PermissionResult(device, granted)),
                )
        except Exception as e:
            logger.exception(f"Error requesting permission: {e}")
            error = PrinterError(f"Permission request failed: {e}")
            error.__cause__ = e
            with self._lock:
                if self._pending_for(device):
                    self._set_disconnected(error)
        return True

    def _pending_for(self, device: UsbDevice) -> bool:
        return (
            isinstance(self._state, PermissionPending)
            and self._state.identity.device_id == device.device_id
        )

    def _complete_access(self, device: UsbDevice, granted: bool) -> None:
        """Finish a permission request: connect on grant, else stay disconnected."""
        with self._lock:
            if not self._pending_for(device):
                logger.debug(f"No pending request for {device.label}")
                return
            identity = self._state.identity
            if not granted:
                logger.warning(f"USB permission denied for {device.label}")
                self._set_disconnected(
                    PermissionDeniedError(f"Access to {device.label} denied"), force=True
                )
                return

        try:
            session = self.discovery.open_session(device, identity)
        except PrinterError as e:
            logger.error(f"Failed to connect printer: {e}")
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error connecting printer: {e}")
            error = PrinterError(f"Failed to connect printer: {e}")
            error.__cause__ = e
        else:
            error = None

        if error is not None:
            with self._lock:
                if self._pending_for(device):
                    self._set_disconnected(error)
            return

        with self._lock:
            if self._closed or not self._pending_for(device):
                # Detached or shut down while opening
                session.close()
                return
            self._state = Connected(session)
            self.last_error = None
            logger.info(f"Printer connected: {identity}")
            self.notifier.notify(True)
            self._changed.notify_all()

    # Host events

    def post_event(self, event: HostEvent) -> None:
        """Queue a host signal (attach, detach, permission result)."""
        self.events.put(event)
        self.monitor.wake()

    def handle_event(self, event: HostEvent) -> None:
        """Apply a single host signal."""
        if isinstance(event, PermissionResult):
            logger.debug(f"Permission result: {event.granted} for {event.device.label}")
            self._complete_access(event.device, event.granted)
        elif isinstance(event, DeviceAttached):
            logger.debug(f"USB device attached: {event.device.label}")
            if is_printer(event.device):
                self.request_access(event.device)
        elif isinstance(event, DeviceDetached):
            logger.debug(f"USB device detached: {event.device_id}")
            self._handle_detach(event.device_id)

    def _handle_detach(self, device_id: str) -> None:
        with self._lock:
            state = self._state
            if isinstance(state, Connected) and state.identity.device_id == device_id:
                self._teardown(state.session, "device detached")
            elif isinstance(state, PermissionPending) and state.identity.device_id == device_id:
                self._set_disconnected()

    def process_events(self) -> int:
        """Drain and apply all queued host signals.

        Returns:
            int: Number of events handled.
        """
        handled = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled
            self.handle_event(event)
            handled += 1

    # Monitor duties

    def check_health(self) -> bool:
        """Verify the live session; tear it down if the printer is gone.

        Returns:
            bool: True if a session is live and healthy.
        """
        with self._lock:
            state = self._state
        if not isinstance(state, Connected):
            return False
        session = state.session

        try:
            if not self.discovery.is_present(session.identity.device_id):
                self._teardown(session, "device no longer in device list")
                return False
            if not session.is_valid():
                self._teardown(session, "connection handle invalid")
                return False
        except OSError as e:
            logger.error(f"Error checking connection: {e}")
            self._teardown(session, f"health check failed: {e}")
            return False
        return True

    def reconnect(self) -> bool:
        """Scan for a printer while disconnected and request access to it.

        Returns:
            bool: True if an access request was started.
        """
        with self._lock:
            if self._closed or not isinstance(self._state, Disconnected):
                return False
            self._state = RECONNECTING

        logger.debug("Checking for printer reconnection...")
        device = None
        try:
            device = self.discovery.scan()
        except OSError as e:
            logger.error(f"Error checking for reconnection: {e}")
        finally:
            if device is None:
                with self._lock:
                    if self._state is RECONNECTING:
                        self._state = DISCONNECTED

        if device is None:
            return False

        logger.info(f"Printer detected, attempting to reconnect: {device.label}")
        return self.request_access(device)

    # Print API

    def set_printer_width(self, width: int) -> int:
        """Select the 58mm (<= 384) or 80mm (> 384) profile.

        Returns:
            int: Resulting width in dots.
        """
        self._printer_width = normalize_width(width)
        logger.info(f"Printer width set to: {self._printer_width}")
        return self._printer_width

    def send(self, job: PrintJob) -> int:
        """Send a job synchronously over the live session.

        Args:
            job: Encoded job.

        Returns:
            int: Bytes written.

        Raises:
            DeviceNotFoundError: If no printer is connected.
            TransportBrokenError: If the transfer failed; the session is
                torn down before this is raised.
        """
        with self._lock:
            session = self._state.session
        if session is None:
            logger.error("Printer not connected")
            raise DeviceNotFoundError("Printer not connected")

        try:
            written = session.send(job.data)
        except PrinterError as e:
            logger.error(f"Transfer failed, printer may be disconnected: {e}")
            self._teardown(session, str(e))
            raise
        logger.debug(f"Sent {job.kind.value} job ({written} bytes)")
        return written

    def _submit(self, build) -> Future:
        with self._lock:
            if self._closed:
                raise RuntimeError("Printer manager is closed")
            return self._executor.submit(lambda: self.send(build()))

    def print_text(self, text: str) -> Future:
        """Print a line of UTF-8 text.

        Returns:
            Future: Resolves to bytes written.
        """
        return self._submit(lambda: PrintJob(build_text(text), JobKind.TEXT))

    def print_image(self, data: bytes | str, target_width: int | None = None) -> Future:
        """Print an image.

        Args:
            data: Image bytes, base64 text or data URI.
            target_width: Width in dots (None or larger than the printer = full width).

        Returns:
            Future: Resolves to bytes written, or fails with ImageDecodeError.
        """
        printer_width = self._printer_width

        def build() -> PrintJob:
            image = decode_image(data)
            return PrintJob(build_raster(image, target_width, printer_width), JobKind.RASTER)

        return self._submit(build)

    def cut_paper(self) -> Future:
        """Full paper cut."""
        return self._submit(lambda: PrintJob(build_cut(), JobKind.CONTROL))

    def print_test_receipt(self) -> Future:
        """Print the diagnostic test receipt."""
        width = self._printer_width
        return self._submit(lambda: PrintJob(build_test_receipt(width), JobKind.TEXT))

    def list_printers(self) -> list[UsbDevice]:
        """List attached printer-class devices."""
        return self.discovery.list_printers()
