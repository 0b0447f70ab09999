"""Configuration management for the usbprint agent."""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "usbprint"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"

# Supported paper profiles, in printable dots
PRINTER_WIDTH_58MM = 384  # 48mm printable
PRINTER_WIDTH_80MM = 576  # 72mm printable


def normalize_width(width: int) -> int:
    """Snap a requested width to one of the two supported profiles.

    Anything up to 384 selects 58mm paper, anything larger selects 80mm.
    This is a two-way switch, not a continuous setting.

    Args:
        width: Requested width in dots.

    Returns:
        int: 384 or 576.
    """
    return PRINTER_WIDTH_58MM if width <= PRINTER_WIDTH_58MM else PRINTER_WIDTH_80MM


@dataclass
class UsbPrintConfig:
    """Configuration for the usbprint agent.

    Attributes:
        printer_width: Printer width in dots (384 = 58mm, 576 = 80mm).
        health_check_interval: Seconds between health checks while connected.
        reconnect_interval: Seconds between reconnection scans while disconnected.
        transfer_timeout_ms: Bulk transfer timeout in milliseconds.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        vendor_id: Only consider devices from this USB vendor (None = any).
        product_id: Only consider devices with this USB product id (None = any).
    """

    printer_width: int = PRINTER_WIDTH_58MM
    health_check_interval: float = 2.0
    reconnect_interval: float = 3.0
    transfer_timeout_ms: int = 3000
    log_level: str = "INFO"
    vendor_id: int | None = None
    product_id: int | None = None

    def __post_init__(self):
        self.printer_width = normalize_width(self.printer_width)

    def save(self, config_path: Path | None = None) -> None:
        """Save config to file.

        Args:
            config_path: Path to config file (default: ~/.config/usbprint/config.json).
        """
        path = config_path or DEFAULT_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def load(cls, config_path: Path | None = None) -> "UsbPrintConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file.

        Returns:
            UsbPrintConfig: Loaded configuration or default.
        """
        path = config_path or DEFAULT_CONFIG_FILE

        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Error loading config {path}: {e}")
            return cls()

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed config {path}")
            return cls()

        defaults = cls()
        try:
            return cls(
                printer_width=data.get("printer_width", defaults.printer_width),
                health_check_interval=data.get(
                    "health_check_interval", defaults.health_check_interval
                ),
                reconnect_interval=data.get("reconnect_interval", defaults.reconnect_interval),
                transfer_timeout_ms=data.get("transfer_timeout_ms", defaults.transfer_timeout_ms),
                log_level=data.get("log_level", defaults.log_level),
                vendor_id=data.get("vendor_id"),
                product_id=data.get("product_id"),
            )
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid value in config {path}: {e}")
            return defaults


def get_config(config_path: Path | None = None) -> UsbPrintConfig:
    """Get the current configuration.

    Args:
        config_path: Optional custom config path.

    Returns:
        UsbPrintConfig: Current configuration.
    """
    return UsbPrintConfig.load(config_path)
