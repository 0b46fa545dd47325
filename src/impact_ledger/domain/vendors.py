import re

UNKNOWN_VENDOR = "unknown_vendor"

_STORE_NUMBER_RE = re.compile(r"\s+(?:#|store|no|unit|ste)\s*\d+$")
_TRAILING_DIGITS_RE = re.compile(r"\s+\d{3,}$")
_LEGAL_SUFFIX_RE = re.compile(r"\b(?:inc|llc|corp|ltd|co)\.?$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]+")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_vendor_name(name: str | None) -> str:
    """
    Reduce a raw vendor name to a cache key.

    "Starbucks #1234" -> "starbucks", "Ben & Jerry's Inc." -> "ben_and_jerrys".
    Anything that reduces to nothing becomes UNKNOWN_VENDOR.
    """
    if not name:
        return UNKNOWN_VENDOR
    value = name.strip().lower()
    value = _STORE_NUMBER_RE.sub("", value)
    value = _TRAILING_DIGITS_RE.sub("", value)
    value = _LEGAL_SUFFIX_RE.sub("", value)
    value = value.replace("&", "and")
    value = _NON_ALNUM_RE.sub("", value)
    value = _WHITESPACE_RE.sub("_", value.strip())
    value = value.strip("_")
    return value or UNKNOWN_VENDOR


def is_cacheable(normalized_name: str | None) -> bool:
    return bool(normalized_name) and normalized_name != UNKNOWN_VENDOR
