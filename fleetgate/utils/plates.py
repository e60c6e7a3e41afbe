"""Vehicle identifier (license plate) normalization."""

from typing import Optional


def normalize_plate(value: Optional[str]) -> str:
    """Plates are compared and stored trimmed and upper-cased."""
    if value is None:
        return ""
    return str(value).strip().upper()


def same_plate(a: Optional[str], b: Optional[str]) -> bool:
    na = normalize_plate(a)
    return bool(na) and na == normalize_plate(b)
