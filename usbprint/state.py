"""Connection state machine values."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from usbprint.session import PrinterIdentity, UsbSession


@dataclass(frozen=True)
class Disconnected:
    """No printer; the reconnection loop is active."""

    connected = False
    session = None


@dataclass(frozen=True)
class Reconnecting:
    """A reconnection scan is running."""

    connected = False
    session = None


@dataclass(frozen=True)
class PermissionPending:
    """Access to a printer has been requested and not yet resolved."""

    identity: "PrinterIdentity"

    connected = False
    session = None


@dataclass(frozen=True)
class Connected:
    """A live session owns the printer."""

    session: "UsbSession"

    connected = True

    @property
    def identity(self) -> "PrinterIdentity":
        return self.session.identity


ConnectionState = Union[Disconnected, Reconnecting, PermissionPending, Connected]

DISCONNECTED = Disconnected()
RECONNECTING = Reconnecting()
