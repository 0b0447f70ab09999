"""Exceptions raised by the printer core."""


class PrinterError(Exception):
    """Base error for printer operations."""

    pass


class DeviceNotFoundError(PrinterError):
    """No printer-class device is attached, or none is connected."""

    pass


class PermissionDeniedError(PrinterError):
    """The OS refused access to the device."""

    pass


class InterfaceClaimFailedError(PrinterError):
    """The device has no usable interface or the interface could not be claimed."""

    pass


class EndpointNotFoundError(PrinterError):
    """The printer interface exposes no bulk OUT endpoint."""

    pass


class TransportBrokenError(PrinterError):
    """A bulk transfer failed, timed out, was short, or the session is gone."""

    pass


class ImageDecodeError(PrinterError):
    """Image data could not be decoded or processed."""

    pass
