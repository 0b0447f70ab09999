"""Command-line interface for the usbprint agent."""

import logging
import signal
import sys
import threading
from pathlib import Path

import click

from usbprint import __version__
from usbprint.config import DEFAULT_CONFIG_FILE, UsbPrintConfig, get_config, normalize_width
from usbprint.discovery import is_printer
from usbprint.errors import PrinterError
from usbprint.escpos.commands import paper_label
from usbprint.manager import PrinterManager
from usbprint.usb import get_backend

CONNECT_TIMEOUT = 5.0
PRINT_TIMEOUT = 30.0


def setup_logging(level: str) -> None:
    """Set up logging configuration.

    Args:
        level: Log level string.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def _hex_id(ctx, param, value):
    """Parse a USB id given as hex (0x0416 or 0416)."""
    if value is None:
        return None
    try:
        return int(value, 16)
    except ValueError as err:
        raise click.BadParameter(f"'{value}' is not a hex USB id") from err


def _make_manager(config: UsbPrintConfig) -> PrinterManager:
    backend = get_backend(config.vendor_id, config.product_id)
    return PrinterManager(backend, config)


def _connect(manager: PrinterManager) -> None:
    """Start the manager and wait for a printer, exiting on failure."""
    manager.start()
    if manager.wait_connected(CONNECT_TIMEOUT):
        return

    manager.close()
    error = manager.last_error
    click.echo(f"Error: {error or 'No USB printer found'}")
    click.echo("Hints:")
    click.echo("  - Check the cable and that the printer is switched on")
    click.echo("  - Run 'usbprint devices' to list detected printers")
    click.echo("  - On Linux, grant access with a udev rule for the printer's VID:PID")
    sys.exit(1)


def _run_job(manager: PrinterManager, submit) -> int:
    """Connect, run one print request and report the result."""
    _connect(manager)
    try:
        written = submit().result(timeout=PRINT_TIMEOUT)
    except PrinterError as e:
        click.echo(f"Print failed: {e}")
        sys.exit(1)
    finally:
        manager.close()
    click.echo(f"Sent {written} bytes")
    return written


@click.group()
@click.version_option(version=__version__)
def main():
    """usbprint - USB thermal receipt printer agent.

    Keeps a connection to a USB ESC/POS receipt printer and prints text,
    images and paper cuts.
    """
    pass


@main.command()
@click.option("--width", type=int, help="Printer width in dots (<=384 = 58mm, larger = 80mm)")
@click.option("--health-interval", type=float, help="Seconds between health checks")
@click.option("--reconnect-interval", type=float, help="Seconds between reconnection scans")
@click.option("--timeout", "timeout_ms", type=int, help="Bulk transfer timeout in milliseconds")
@click.option("--vendor-id", callback=_hex_id, help="Only use printers from this vendor (hex)")
@click.option("--product-id", callback=_hex_id, help="Only use this product id (hex)")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]))
def configure(width, health_interval, reconnect_interval, timeout_ms, vendor_id, product_id, log_level):
    """Update the saved configuration."""
    config = get_config()

    if width is not None:
        config.printer_width = normalize_width(width)
    if health_interval is not None:
        config.health_check_interval = health_interval
    if reconnect_interval is not None:
        config.reconnect_interval = reconnect_interval
    if timeout_ms is not None:
        config.transfer_timeout_ms = timeout_ms
    if vendor_id is not None:
        config.vendor_id = vendor_id
    if product_id is not None:
        config.product_id = product_id
    if log_level is not None:
        config.log_level = log_level

    config.save()
    click.echo(f"Configuration saved to {DEFAULT_CONFIG_FILE}")
    click.echo(f"Printer width: {config.printer_width} ({paper_label(config.printer_width)})")


@main.command()
def status():
    """Show current configuration and printer availability."""
    config = get_config()

    click.echo("\n=== usbprint Status ===\n")
    click.echo(f"Printer Width: {config.printer_width} ({paper_label(config.printer_width)})")
    click.echo(f"Health Interval: {config.health_check_interval}s")
    click.echo(f"Reconnect Interval: {config.reconnect_interval}s")
    click.echo(f"Transfer Timeout: {config.transfer_timeout_ms}ms")
    if config.vendor_id is not None:
        click.echo(f"Vendor Filter: {config.vendor_id:04x}")
    if config.product_id is not None:
        click.echo(f"Product Filter: {config.product_id:04x}")

    click.echo("\n=== Printer Status ===\n")
    try:
        devices = get_backend(config.vendor_id, config.product_id).list_devices()
    except OSError as e:
        click.echo(f"USB not available: {e}")
        sys.exit(1)

    printers = [device for device in devices if is_printer(device)]
    if printers:
        click.echo(f"Printer: {printers[0].label}")
    else:
        click.echo("No USB printer found")


@main.command()
@click.option("--all", "show_all", is_flag=True, help="Include non-printer devices")
def devices(show_all: bool):
    """List attached USB printers."""
    config = get_config()

    try:
        found = get_backend(config.vendor_id, config.product_id).list_devices()
    except OSError as e:
        click.echo(f"USB not available: {e}")
        sys.exit(1)

    click.echo("\n=== USB Devices ===\n")
    listed = [device for device in found if show_all or is_printer(device)]
    if not listed:
        click.echo("No printers found.")
        return

    for device in listed:
        marker = "* " if is_printer(device) else "  "
        click.echo(
            f"{marker}{device.device_id}  {device.vendor_id:04x}:{device.product_id:04x}  "
            f"class={device.device_class}  {device.name or '(unknown)'}"
        )

    click.echo("\n(* = printer class)")


@main.command()
@click.option("--no-cut", is_flag=True, help="Do not cut the paper afterwards")
def test(no_cut: bool):
    """Print a test receipt."""
    config = get_config()
    setup_logging(config.log_level)

    manager = _make_manager(config)
    _connect(manager)
    try:
        manager.print_test_receipt().result(timeout=PRINT_TIMEOUT)
        if not no_cut:
            manager.cut_paper().result(timeout=PRINT_TIMEOUT)
    except PrinterError as e:
        click.echo(f"Test print failed: {e}")
        sys.exit(1)
    finally:
        manager.close()
    click.echo("Test print sent.")


@main.command("print-text")
@click.argument("text")
def print_text(text: str):
    """Print a line of text."""
    config = get_config()
    setup_logging(config.log_level)
    manager = _make_manager(config)
    _run_job(manager, lambda: manager.print_text(text))


@main.command("print-image")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--width", type=int, default=None, help="Image width in dots (default: full width)")
def print_image(path: Path, width: int | None):
    """Print an image file."""
    config = get_config()
    setup_logging(config.log_level)
    data = path.read_bytes()
    manager = _make_manager(config)
    _run_job(manager, lambda: manager.print_image(data, width))


@main.command()
def cut():
    """Cut the paper."""
    config = get_config()
    setup_logging(config.log_level)
    manager = _make_manager(config)
    _run_job(manager, manager.cut_paper)


@main.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def start(verbose: bool):
    """Run the agent and keep the printer connected.

    Logs connect and disconnect events until interrupted (Ctrl+C).
    """
    config = get_config()
    level = "DEBUG" if verbose else config.log_level
    setup_logging(level)

    stop = threading.Event()

    def _handle_shutdown(signum, frame):
        logging.getLogger(__name__).info("Shutdown signal received")
        stop.set()

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    click.echo("Starting usbprint agent... (Ctrl+C to stop)")
    with _make_manager(config) as manager:
        manager.subscribe(lambda event: click.echo(f"[{event}]"))
        stop.wait()
    click.echo("Agent stopped")


@main.command("install-service")
@click.option("--user", is_flag=True, help="Install as user service (no sudo required)")
def install_service(user: bool):
    """Install systemd service for auto-start."""
    service_content = f"""[Unit]
Description=usbprint Receipt Printer Agent
After=multi-user.target

[Service]
Type=simple
ExecStart={sys.executable} -m usbprint start
Restart=on-failure
RestartSec=10
Environment=HOME={Path.home()}

[Install]
WantedBy={"default.target" if user else "multi-user.target"}
"""

    if user:
        service_dir = Path.home() / ".config" / "systemd" / "user"
        service_path = service_dir / "usbprint.service"
    else:
        service_path = Path("/etc/systemd/system/usbprint.service")

    click.echo("\nService file content:\n")
    click.echo(service_content)

    if user:
        service_dir.mkdir(parents=True, exist_ok=True)
        with open(service_path, "w") as f:
            f.write(service_content)

        click.echo(f"\nService installed to {service_path}")
        click.echo("\nTo enable and start the service:")
        click.echo("  systemctl --user daemon-reload")
        click.echo("  systemctl --user enable usbprint")
        click.echo("  systemctl --user start usbprint")
    else:
        click.echo("\nTo install as system service, run:")
        click.echo(f"  sudo tee {service_path} << 'EOF'")
        click.echo(service_content)
        click.echo("EOF")
        click.echo("\nThen enable and start:")
        click.echo("  sudo systemctl daemon-reload")
        click.echo("  sudo systemctl enable usbprint")
        click.echo("  sudo systemctl start usbprint")


if __name__ == "__main__":
    main()
