"""ESC/POS command builders.

All functions are pure and return complete byte sequences.
"""

from datetime import datetime
from enum import IntEnum

ESC = 0x1B
GS = 0x1D
LF = 0x0A


class Align(IntEnum):
    """Justification modes for ESC a."""

    LEFT = 0
    CENTER = 1
    RIGHT = 2


def initialize() -> bytes:
    """ESC @ - reset the printer to power-on defaults."""
    return bytes([ESC, 0x40])


def line_feed() -> bytes:
    return bytes([LF])


def feed_lines(lines: int) -> bytes:
    """ESC d n - print the buffer and feed n lines.

    Args:
        lines: Number of lines (0-255).

    Raises:
        ValueError: If lines is out of range.
    """
    if not 0 <= lines <= 255:
        raise ValueError(f"Line count must be 0-255, got {lines}")
    return bytes([ESC, 0x64, lines])


def align(mode: Align) -> bytes:
    """ESC a n - set justification."""
    return bytes([ESC, 0x61, int(mode)])


def build_text(text: str) -> bytes:
    """Encode text as UTF-8 followed by a single line feed.

    Control bytes in the text are passed through untouched.
    """
    return text.encode("utf-8") + line_feed()


def build_cut() -> bytes:
    """GS V 0 - full paper cut."""
    return bytes([GS, 0x56, 0x00])


def paper_label(width: int) -> str:
    return "58mm" if width == 384 else "80mm"


def build_test_receipt(width: int, now: datetime | None = None) -> bytes:
    """Build the diagnostic test receipt.

    Args:
        width: Configured printer width in dots (384 or 576).
        now: Timestamp to print (default: current local time).

    Returns:
        bytes: Encoded receipt text.
    """
    now = now or datetime.now()
    rule = "=" * 32
    lines = [
        "",
        rule,
        "       TEST PRINT",
        rule,
        f"Date: {now.strftime('%Y-%m-%d %H:%M:%S')}",
        "Status: OK",
        f"Printer Width: {paper_label(width)}",
        "-" * 32,
        "This is a test print from the",
        "usbprint agent",
        rule,
    ]
    return build_text("\n".join(lines))
