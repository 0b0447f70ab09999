"""Tests for image rasterization and ESC * strip encoding."""

import base64
import io
import os

import pytest
from PIL import Image

from usbprint.errors import ImageDecodeError
from usbprint.escpos.raster import (
    MonochromeRaster,
    build_raster,
    decode_image,
    encode_raster,
    resolve_width,
    scaled_height,
    to_monochrome,
)

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)


def decode_strips(data: bytes, width: int) -> list[list[bool]]:
    """Parse centered ESC * 33 strips back into rows of pixels.

    Returns every row carried by the strips, including padding rows of the
    last strip.
    """
    assert data[:3] == b"\x1b\x61\x01"
    assert data[-6:] == b"\x1b\x61\x00\x1b\x64\x02"
    body = data[3:-6]

    rows: list[list[bool]] = []
    pos = 0
    while pos < len(body):
        assert body[pos : pos + 3] == b"\x1b\x2a\x21"
        n = body[pos + 3] | (body[pos + 4] << 8)
        assert n == (width + 7) // 8
        pos += 5

        strip = [[False] * width for _ in range(24)]
        for x in range(width):
            for band in range(3):
                value = body[pos]
                pos += 1
                for bit in range(8):
                    strip[band * 8 + bit][x] = bool(value & (0x80 >> bit))
        assert body[pos] == 0x0A
        pos += 1
        rows.extend(strip)
    return rows


def image_bytes(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def expected_black(rgb: tuple[int, int, int]) -> bool:
    r, g, b = rgb
    return int(r * 0.299 + g * 0.587 + b * 0.114) < 128


@pytest.fixture
def pattern_image() -> Image.Image:
    """40x30 image with a mix of colours and greys."""
    palette = [BLACK, WHITE, (255, 0, 0), (0, 255, 0), (0, 0, 255), (120, 120, 120), (136, 136, 136)]
    image = Image.new("RGB", (40, 30))
    for y in range(30):
        for x in range(40):
            image.putpixel((x, y), palette[(x * 3 + y) % len(palette)])
    return image


class TestExactLayout:
    """Byte-exact checks of the strip format."""

    def test_single_black_dot(self):
        """Top-left dot sets bit 7 of the first column's first byte."""
        image = Image.new("RGB", (8, 1), WHITE)
        image.putpixel((0, 0), BLACK)

        data = build_raster(image, 8, 384)

        expected = (
            b"\x1b\x61\x01"
            + b"\x1b\x2a\x21\x01\x00"
            + b"\x80\x00\x00"
            + b"\x00\x00\x00" * 7
            + b"\x0a"
            + b"\x1b\x61\x00"
            + b"\x1b\x64\x02"
        )
        assert data == expected

    def test_band_bit_order(self):
        """Bit 7 is the top row of each 8-row band."""
        image = Image.new("RGB", (1, 24), WHITE)
        for y in (0, 9, 23):
            image.putpixel((0, y), BLACK)

        data = build_raster(image, 1, 384)

        assert data[3:8] == b"\x1b\x2a\x21\x01\x00"
        assert data[8:11] == bytes([0x80, 0x40, 0x01])

    def test_width_header_is_little_endian_byte_width(self):
        """nL nH carry ceil(width / 8), low byte first."""
        raster = MonochromeRaster(width=2100, height=1, packed_bits=bytes(263))
        data = encode_raster(raster)
        assert data[3:8] == bytes([0x1B, 0x2A, 33, 0x07, 0x01])
        # 3 bytes per column follow the header
        assert data[8 + 2100 * 3] == 0x0A

    def test_80mm_header(self):
        image = Image.new("RGB", (576, 10), WHITE)
        data = build_raster(image, None, 576)
        assert data[6:8] == bytes([72, 0])

    def test_strip_count(self):
        """One strip per 24 rows, the last one partial."""
        image = Image.new("RGB", (16, 50), WHITE)
        data = build_raster(image, 16, 384)
        strip_size = 5 + 16 * 3 + 1
        assert len(data) == 3 + 3 * strip_size + 6


class TestRoundTrip:
    """Decoding the strips reproduces the thresholded image."""

    def test_pixels_match_threshold(self, pattern_image):
        """Every decoded dot matches the luminance threshold of its source pixel."""
        data = build_raster(pattern_image, 40, 384)
        rows = decode_strips(data, 40)

        for y in range(30):
            for x in range(40):
                assert rows[y][x] == expected_black(pattern_image.getpixel((x, y))), (x, y)

    def test_padding_rows_are_blank(self):
        """Rows past the image height carry no dots."""
        image = Image.new("RGB", (10, 30), BLACK)
        rows = decode_strips(build_raster(image, 10, 384), 10)

        assert len(rows) == 48
        assert all(all(row) for row in rows[:30])
        assert not any(any(row) for row in rows[30:])

    def test_scaled_dimensions(self):
        """Output is target width by rounded aspect-preserving height."""
        image = Image.new("RGB", (100, 50), BLACK)
        raster = to_monochrome(image, 384)
        assert (raster.width, raster.height) == (384, 192)

        rows = decode_strips(build_raster(image, None, 384), 384)
        assert len(rows) == 192
        assert all(all(row) for row in rows)

    def test_raster_matches_encoding(self, pattern_image):
        """Packed bits and the encoded strips agree."""
        raster = to_monochrome(pattern_image, 40)
        rows = decode_strips(encode_raster(raster), 40)
        for y in range(raster.height):
            for x in range(raster.width):
                assert rows[y][x] == raster.is_black(x, y)


class TestMonochrome:
    """Tests for thresholding and scaling."""

    @pytest.mark.parametrize(
        "color,black",
        [
            (BLACK, True),
            (WHITE, False),
            ((255, 0, 0), True),
            ((0, 255, 0), False),
            ((0, 0, 255), True),
            ((120, 120, 120), True),
            ((136, 136, 136), False),
        ],
    )
    def test_luminance_threshold(self, color, black):
        """Uses Y = 0.299R + 0.587G + 0.114B with a threshold of 128."""
        raster = to_monochrome(Image.new("RGB", (8, 8), color), 8)
        assert raster.is_black(3, 3) is black

    def test_rows_padded_to_bytes(self):
        raster = to_monochrome(Image.new("RGB", (10, 2), BLACK), 10)
        assert raster.bytes_per_row == 2
        assert raster.packed_bits == bytes([0xFF, 0xC0, 0xFF, 0xC0])

    def test_transparency_prints_white(self):
        """Transparent pixels are composited over white paper."""
        image = Image.new("RGBA", (8, 8), (0, 0, 0, 0))
        raster = to_monochrome(image, 8)
        assert raster.packed_bits == bytes(8)

    def test_grayscale_source(self):
        image = Image.new("L", (8, 8), 0)
        assert to_monochrome(image, 8).is_black(0, 0)

    @pytest.mark.parametrize(
        "width,src_w,src_h,expected",
        [(384, 100, 50, 192), (384, 3, 1, 128), (10, 4, 1, 3), (384, 1000, 1, 1), (5, 2, 1, 3)],
    )
    def test_scaled_height_rounds(self, width, src_w, src_h, expected):
        """Height is rounded, half up, never zero."""
        assert scaled_height(width, src_w, src_h) == expected


class TestWidthResolution:
    """Tests for the target width clamp."""

    @pytest.mark.parametrize(
        "target,printer,expected",
        [
            (None, 384, 384),
            (0, 384, 384),
            (-5, 576, 576),
            (500, 384, 384),
            (200, 576, 200),
            (400, 576, 400),
            (600, 576, 576),
            (384, 384, 384),
        ],
    )
    def test_resolve_width(self, target, printer, expected):
        assert resolve_width(target, printer) == expected

    def test_explicit_smaller_width_wins(self):
        """A narrow image is upscaled only to the explicit width."""
        image = Image.new("RGB", (300, 30), BLACK)
        data = build_raster(image, 400, 576)
        assert data[6:8] == bytes([50, 0])
        assert len(decode_strips(data, 400)) == 48

    def test_oversized_target_clamps(self):
        image = Image.new("RGB", (300, 30), BLACK)
        data = build_raster(image, 1000, 576)
        assert data[6:8] == bytes([72, 0])


class TestDecodeImage:
    """Tests for image input decoding."""

    def test_raw_bytes(self):
        image = decode_image(image_bytes(Image.new("RGB", (4, 3), WHITE)))
        assert image.size == (4, 3)

    def test_base64_text(self):
        encoded = base64.b64encode(image_bytes(Image.new("RGB", (4, 3)))).decode()
        assert decode_image(encoded).size == (4, 3)

    def test_base64_with_line_breaks(self):
        encoded = base64.encodebytes(image_bytes(Image.new("RGB", (64, 64)))).decode()
        assert "\n" in encoded
        assert decode_image(encoded).size == (64, 64)

    def test_data_uri(self):
        encoded = base64.b64encode(image_bytes(Image.new("RGB", (2, 2)), "JPEG")).decode()
        assert decode_image(f"data:image/jpeg;base64,{encoded}").size == (2, 2)

    def test_invalid_base64(self):
        with pytest.raises(ImageDecodeError):
            decode_image("not*base64!")

    def test_not_an_image(self):
        with pytest.raises(ImageDecodeError):
            decode_image(b"definitely not an image")

    def test_truncated_image(self):
        noise = Image.frombytes("RGB", (64, 64), os.urandom(64 * 64 * 3))
        data = image_bytes(noise)
        with pytest.raises(ImageDecodeError):
            decode_image(data[: len(data) // 2])
