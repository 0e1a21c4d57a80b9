"""Tests for the utils.py module."""

from ccman.utils import (
    format_table,
    format_timestamp,
    human_readable_size,
    is_valid_url,
    mask_sensitive_value,
    normalize_url,
)


class TestURLValidation:
    def test_valid_urls(self):
        valid_urls = [
            "http://example.com",
            "https://api.openai.com/v1",
            "http://localhost:8080",
            "https://192.168.1.1:3000/api",
        ]
        for url in valid_urls:
            assert is_valid_url(url), f"'{url}' should be valid"

    def test_invalid_urls(self):
        invalid_urls = ["", "not-a-url", "ftp://example.com", "https://"]
        for url in invalid_urls:
            assert not is_valid_url(url), f"'{url}' should be invalid"


class TestURLNormalization:
    def test_normalize_url(self):
        assert normalize_url("api.example.com") == "https://api.example.com"
        assert normalize_url("https://api.example.com/") == "https://api.example.com"
        assert normalize_url("  http://localhost:8080/v1/  ") == "http://localhost:8080/v1"

    def test_empty_stays_empty(self):
        assert normalize_url("") == ""
        assert normalize_url("   ") == ""


class TestSensitiveValueMasking:
    def test_mask_long_value(self):
        assert mask_sensitive_value("sk-1234567890abcdef") == "sk-1" + "*" * 11 + "cdef"

    def test_mask_short_value(self):
        assert mask_sensitive_value("short") == "*****"

    def test_mask_empty(self):
        assert mask_sensitive_value("") == ""
        assert mask_sensitive_value(None) == ""

    def test_custom_mask_char(self):
        assert mask_sensitive_value("abc", mask_char="#") == "###"


def test_format_timestamp():
    assert format_timestamp(None) == "-"
    assert format_timestamp(0) == "-"
    assert len(format_timestamp(1700000000000)) == len("2023-11-14 22:13:20")


def test_human_readable_size():
    assert human_readable_size(0) == "0B"
    assert human_readable_size(512) == "512.0B"
    assert human_readable_size(1536) == "1.5KB"
    assert human_readable_size(1024 * 1024) == "1.0MB"


class TestFormatTable:
    def test_empty(self):
        assert format_table(["Name"], []) == ""

    def test_columns_are_padded(self):
        lines = format_table(["Name", "URL"], [["a", "https://x"], ["longer-name", "y"]]).splitlines()
        assert lines[0] == "Name        | URL      "
        assert lines[1] == "------------+----------"
        assert lines[2] == "a           | https://x"
