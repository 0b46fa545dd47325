import pytest

from impact_ledger.domain.vendors import UNKNOWN_VENDOR, is_cacheable, normalize_vendor_name


@pytest.mark.parametrize("raw,expected", [
    ("Starbucks #1234", "starbucks"),
    ("STARBUCKS store 456", "starbucks"),
    ("Shell 00123", "shell"),
    ("Ben & Jerry's Inc.", "ben_and_jerrys"),
    ("Acme Widgets LLC", "acme_widgets"),
    ("  Whole   Foods Market  ", "whole_foods_market"),
    ("7-Eleven", "7eleven"),
])
def test_normalize_vendor_name(raw: str, expected: str):
    assert normalize_vendor_name(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "#!?"])
def test_empty_names_become_sentinel(raw):
    assert normalize_vendor_name(raw) == UNKNOWN_VENDOR


def test_sentinel_is_not_cacheable():
    assert not is_cacheable(UNKNOWN_VENDOR)
    assert not is_cacheable("")
    assert is_cacheable("starbucks")
