"""Transport session owning an open printer handle."""

import logging
import threading
from dataclasses import dataclass

from usbprint.errors import TransportBrokenError
from usbprint.usb.base import DeviceHandle

logger = logging.getLogger(__name__)

DEFAULT_TRANSFER_TIMEOUT_MS = 3000


@dataclass(frozen=True)
class PrinterIdentity:
    """The selected printer attachment and the endpoint used to reach it."""

    device_id: str
    vendor_id: int
    product_id: int
    interface_index: int
    endpoint_address: int

    def __str__(self) -> str:
        return (
            f"{self.device_id} [{self.vendor_id:04x}:{self.product_id:04x}] "
            f"if={self.interface_index} ep=0x{self.endpoint_address:02x}"
        )


class UsbSession:
    """Open handle, claimed interface and bulk OUT endpoint for one printer.

    Transfers and teardown are serialized on the session lock, so close()
    waits for an in-flight transfer and a closed session never transfers
    again.
    """

    def __init__(
        self,
        identity: PrinterIdentity,
        handle: DeviceHandle,
        timeout_ms: int = DEFAULT_TRANSFER_TIMEOUT_MS,
    ):
        """Wrap an opened handle whose interface is already claimed.

        Args:
            identity: Printer identity (interface and endpoint to use).
            handle: Open device handle.
            timeout_ms: Bulk transfer timeout.
        """
        self.identity = identity
        self.timeout_ms = timeout_ms
        self._handle = handle
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, data: bytes) -> int:
        """Write bytes to the printer's bulk OUT endpoint.

        Args:
            data: ESC/POS bytes.

        Returns:
            int: Bytes written.

        Raises:
            TransportBrokenError: If the session is closed, the transfer
                raised, timed out, or wrote fewer bytes than requested.
        """
        with self._lock:
            if self._closed:
                raise TransportBrokenError("Printer session is closed")
            if not data:
                return 0
            try:
                written = self._handle.bulk_transfer(
                    self.identity.endpoint_address, data, self.timeout_ms
                )
            except OSError as err:
                raise TransportBrokenError(f"Bulk transfer failed: {err}") from err

        logger.debug(f"Sent {len(data)} bytes, result: {written}")
        if written < 0:
            raise TransportBrokenError(f"Bulk transfer failed with result {written}")
        if written < len(data):
            raise TransportBrokenError(f"Short transfer: {written} of {len(data)} bytes")
        return written

    def is_valid(self) -> bool:
        """Check if the handle is still open and usable."""
        with self._lock:
            return not self._closed and self._handle.is_valid()

    def close(self) -> bool:
        """Release the interface and close the handle.

        Returns:
            bool: True if this call released the session, False if it was
                  already closed.
        """
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            try:
                self._handle.release_interface(self.identity.interface_index)
            except OSError as e:
                logger.warning(f"Error releasing interface: {e}")
            finally:
                try:
                    self._handle.close()
                except OSError as e:
                    logger.warning(f"Error closing device: {e}")

        logger.info(f"Session closed for {self.identity}")
        return True
