"""Chilean national id (RUT) normalization."""

import re
from typing import Optional

_SEPARATORS = re.compile(r"[\s.\-]")


def normalize_rut(value: Optional[str]) -> str:
    """
    Canonical '12.345.678-9' form: dotted thousands, hyphen, upper-case check
    digit. Input that is not digits plus a check digit is returned trimmed.
    """
    text = str(value or "").strip()
    compact = _SEPARATORS.sub("", text).upper()
    body, check = compact[:-1], compact[-1:]
    if not body.isdigit() or not (check.isdigit() or check == "K"):
        return text
    return f"{int(body):,}".replace(",", ".") + f"-{check}"


def rut_variants(value: Optional[str]) -> list[str]:
    """Spellings one RUT may be stored under: canonical, undotted, as typed."""
    canonical = normalize_rut(value)
    spellings = [canonical, canonical.replace(".", ""), str(value or "").strip()]
    return list(dict.fromkeys(s for s in spellings if s))
