"""ESC/POS encoding.

Builds the byte streams sent to the printer: text, control commands and
raster images.
"""

from usbprint.escpos.commands import (
    Align,
    align,
    build_cut,
    build_test_receipt,
    build_text,
    feed_lines,
    initialize,
)
from usbprint.escpos.job import JobKind, PrintJob
from usbprint.escpos.raster import (
    MonochromeRaster,
    build_raster,
    decode_image,
    encode_raster,
    to_monochrome,
)

__all__ = [
    "Align",
    "JobKind",
    "MonochromeRaster",
    "PrintJob",
    "align",
    "build_cut",
    "build_raster",
    "build_test_receipt",
    "build_text",
    "decode_image",
    "encode_raster",
    "feed_lines",
    "initialize",
    "to_monochrome",
]
