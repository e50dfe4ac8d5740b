import math

import pytest

from mailwave.normalizer import normalize_code, normalize_handle, normalize_text_key, split_codes


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("7", "007"),
        ("48", "048"),
        (" 048 ", "048"),
        ("1234", "1234"),
        (12, "012"),
        ("", None),
        ("   ", None),
        ("NULL", None),
        ("null", "null"),
        (None, None),
        (math.nan, None),
    ],
)
def test_normalize_code(raw, expected):
    assert normalize_code(raw) == expected


@pytest.mark.parametrize("raw", ["7", "048", "1234", " 5 ", "abc"])
def test_normalize_code_is_idempotent(raw):
    once = normalize_code(raw)
    assert normalize_code(once) == once


def test_normalize_code_custom_width():
    assert normalize_code("7", pad_width=5) == "00007"
    assert normalize_code("123456", pad_width=5) == "123456"


def test_normalize_text_key():
    assert normalize_text_key("  Deanery   X ") == "deanery x"
    assert normalize_text_key("DEANERY\tX") == "deanery x"
    assert normalize_text_key(None) == ""
    assert normalize_text_key(math.nan) == ""
    assert normalize_text_key(normalize_text_key("Straße Nord")) == normalize_text_key("Straße Nord")


def test_normalize_handle_is_case_insensitive():
    assert normalize_handle(" Anna@Example.org ") == normalize_handle("anna@example.org")


def test_split_codes_dedupes_and_keeps_order():
    assert split_codes("205, 7;205|NULL") == ["205", "007"]
    assert split_codes(None) == []
