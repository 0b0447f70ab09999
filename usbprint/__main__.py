"""Allow running as ``python -m usbprint``."""

from usbprint.cli import main

main()
