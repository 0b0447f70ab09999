"""Image to ESC/POS raster conversion.

Images are scaled to the printer width, reduced to 1-bit with a hard
luminance threshold and emitted as 24-dot double-density bit image strips
(ESC * 33). The byte layout below is what the printer firmware expects and
must not change.
"""

import base64
import binascii
import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from usbprint.errors import ImageDecodeError
from usbprint.escpos.commands import ESC, LF, Align, align, feed_lines

logger = logging.getLogger(__name__)

# 24-dot double-density bit image mode for ESC *
BIT_IMAGE_MODE = 33
STRIP_HEIGHT = 24
THRESHOLD = 128


@dataclass(frozen=True)
class MonochromeRaster:
    """1-bit raster, row-major, MSB-first, rows padded to whole bytes.

    A set bit is a black dot.
    """

    width: int
    height: int
    packed_bits: bytes

    @property
    def bytes_per_row(self) -> int:
        return (self.width + 7) // 8

    def is_black(self, x: int, y: int) -> bool:
        byte = self.packed_bits[y * self.bytes_per_row + x // 8]
        return bool(byte & (0x80 >> (x % 8)))


def decode_image(data: bytes | str) -> Image.Image:
    """Decode image bytes or base64 text into a Pillow image.

    Args:
        data: Raw image file bytes, base64 text, or a data URI
              ("data:image/png;base64,...").

    Returns:
        Image.Image: Loaded image.

    Raises:
        ImageDecodeError: If the data is not a readable image.
    """
    if isinstance(data, str):
        text = data.strip()
        if text.startswith("data:") and "," in text:
            text = text.split(",", 1)[1]
        try:
            data = base64.b64decode("".join(text.split()), validate=True)
        except (binascii.Error, ValueError) as err:
            raise ImageDecodeError(f"Invalid base64 image data: {err}") from err

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (
        UnidentifiedImageError,
        OSError,
        SyntaxError,
        ValueError,
        Image.DecompressionBombError,
    ) as err:
        raise ImageDecodeError(f"Failed to decode image: {err}") from err

    logger.debug(f"Decoded {image.format} image {image.width}x{image.height}")
    return image


def _flatten(image: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency over white."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def scaled_height(width: int, source_width: int, source_height: int) -> int:
    """Height preserving aspect ratio, rounded half up, at least one row."""
    return max(1, (2 * width * source_height + source_width) // (2 * source_width))


def to_monochrome(image: Image.Image, width: int) -> MonochromeRaster:
    """Resize an image to width and threshold it to 1-bit.

    Args:
        image: Source image.
        width: Target width in dots.

    Returns:
        MonochromeRaster: Thresholded raster.
    """
    if image.width <= 0 or image.height <= 0:
        raise ImageDecodeError("Image has no pixels")

    height = scaled_height(width, image.width, image.height)
    resized = _flatten(image).resize((width, height), Image.Resampling.LANCZOS)
    rgb = resized.tobytes()

    bytes_per_row = (width + 7) // 8
    packed = bytearray(bytes_per_row * height)
    for y in range(height):
        row_offset = y * width * 3
        for x in range(width):
            i = row_offset + x * 3
            gray = int(rgb[i] * 0.299 + rgb[i + 1] * 0.587 + rgb[i + 2] * 0.114)
            if gray < THRESHOLD:
                packed[y * bytes_per_row + x // 8] |= 0x80 >> (x % 8)

    return MonochromeRaster(width=width, height=height, packed_bits=bytes(packed))


def encode_raster(raster: MonochromeRaster) -> bytes:
    """Serialize a raster as centered ESC * 33 strips.

    Each strip covers 24 rows. For every column three bytes follow, one per
    8-row band, top row in bit 7. Rows below the image are left blank.
    """
    width = raster.width
    height = raster.height
    n = raster.bytes_per_row

    out = bytearray(align(Align.CENTER))
    for top in range(0, height, STRIP_HEIGHT):
        out += bytes([ESC, 0x2A, BIT_IMAGE_MODE, n & 0xFF, (n >> 8) & 0xFF])
        for x in range(width):
            for band in range(3):
                value = 0
                for bit in range(8):
                    y = top + band * 8 + bit
                    if y < height and raster.is_black(x, y):
                        value |= 1 << (7 - bit)
                out.append(value)
        out.append(LF)

    out += align(Align.LEFT)
    out += feed_lines(2)
    return bytes(out)


def resolve_width(target_width: int | None, printer_width: int) -> int:
    """Clamp a requested width to the printer width.

    An unset or non-positive width, or one wider than the printer, falls
    back to the printer width.
    """
    if not target_width or target_width <= 0 or target_width > printer_width:
        return printer_width
    return target_width


def build_raster(image: Image.Image, target_width: int | None, printer_width: int) -> bytes:
    """Build the ESC/POS byte stream for an image.

    Args:
        image: Source image.
        target_width: Requested width in dots (None = printer width).
        printer_width: Configured printer width (384 or 576).

    Returns:
        bytes: ESC/POS raster job.
    """
    width = resolve_width(target_width, printer_width)
    raster = to_monochrome(image, width)
    logger.debug(
        f"Rasterized {image.width}x{image.height} to {raster.width}x{raster.height}"
    )
    return encode_raster(raster)
