import pytest

from pos_tracker.services.identifier_service import normalize_merchant_id, normalize_serial, receipt_key


@pytest.mark.parametrize("raw, expected", [
    ("  0091234 ", "91234"),
    ("91234", "91234"),
    ("ABC01", "abc01"),
    ("000", "0"),
    ("0", "0"),
    ("", ""),
    (None, ""),
    (1234, "1234"),
])
def test_normalize_merchant_id(raw, expected):
    assert normalize_merchant_id(raw) == expected


def test_normalize_merchant_id_is_idempotent():
    for raw in ["0091234", " Mid-01 ", "000", ""]:
        once = normalize_merchant_id(raw)
        assert normalize_merchant_id(once) == once


def test_leading_zero_variants_compare_equal():
    assert normalize_merchant_id("007") == normalize_merchant_id("7") == normalize_merchant_id(" 07 ")


def test_normalize_serial():
    assert normalize_serial("  ab-100 ") == "AB-100"
    assert normalize_serial(None) == ""


def test_receipt_key_trims_and_ignores_case():
    assert receipt_key(" FT2601abc ") == receipt_key("ft2601ABC") == "ft2601abc"


def test_receipt_key_keeps_inner_spaces():
    assert receipt_key("FT 26 01") == "ft 26 01"
    assert receipt_key("FT 26 01") != receipt_key("FT2601")
    assert receipt_key(None) == ""
