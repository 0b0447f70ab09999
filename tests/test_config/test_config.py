"""Tests for configuration loading and width bucketing."""

import json

import pytest

from usbprint.config import (
    PRINTER_WIDTH_58MM,
    PRINTER_WIDTH_80MM,
    UsbPrintConfig,
    get_config,
    normalize_width,
)


class TestNormalizeWidth:
    """The width setting is a two-way switch."""

    @pytest.mark.parametrize("width", [-10, 0, 1, 200, 383, 384])
    def test_small_widths_select_58mm(self, width):
        assert normalize_width(width) == PRINTER_WIDTH_58MM == 384

    @pytest.mark.parametrize("width", [385, 500, 576, 577, 10_000])
    def test_large_widths_select_80mm(self, width):
        assert normalize_width(width) == PRINTER_WIDTH_80MM == 576

    def test_idempotent(self):
        """Normalizing a normalized width changes nothing."""
        for width in (1, 384, 400, 5000):
            once = normalize_width(width)
            assert normalize_width(once) == once


class TestUsbPrintConfig:
    """Tests for the config dataclass."""

    def test_defaults(self):
        config = UsbPrintConfig()
        assert config.printer_width == 384
        assert config.health_check_interval == 2.0
        assert config.reconnect_interval == 3.0
        assert config.transfer_timeout_ms == 3000
        assert config.vendor_id is None

    def test_width_normalized_on_init(self):
        assert UsbPrintConfig(printer_width=500).printer_width == 576

    def test_save_and_load(self, tmp_path):
        """Saved values should load back."""
        path = tmp_path / "config.json"
        UsbPrintConfig(
            printer_width=576,
            reconnect_interval=5.0,
            vendor_id=0x0416,
            log_level="DEBUG",
        ).save(path)

        loaded = UsbPrintConfig.load(path)

        assert loaded.printer_width == 576
        assert loaded.reconnect_interval == 5.0
        assert loaded.vendor_id == 0x0416
        assert loaded.log_level == "DEBUG"
        assert loaded.health_check_interval == 2.0

    def test_missing_file_gives_defaults(self, tmp_path):
        assert get_config(tmp_path / "missing.json") == UsbPrintConfig()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        """Should fall back to defaults on invalid JSON."""
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert UsbPrintConfig.load(path) == UsbPrintConfig()

    def test_non_object_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2, 3]")
        assert UsbPrintConfig.load(path) == UsbPrintConfig()

    def test_partial_file(self, tmp_path):
        """Missing keys keep their defaults; width is bucketed."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"printer_width": 200}))
        config = UsbPrintConfig.load(path)
        assert config.printer_width == 384
        assert config.transfer_timeout_ms == 3000

    @pytest.mark.parametrize(
        "data",
        [{"printer_width": "576"}, {"printer_width": None, "reconnect_interval": 9.0}],
    )
    def test_invalid_values_give_defaults(self, tmp_path, data):
        """Should fall back to defaults when a value has the wrong type."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data))
        assert UsbPrintConfig.load(path) == UsbPrintConfig()
