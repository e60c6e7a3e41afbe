# fleetgate/utils/json_parser.py
"""
Helpers for JSON payloads read off scanned QR codes.
"""

import json
from typing import Optional, Any, Union


def safe_parse_json(raw: Union[str, bytes]) -> Optional[Any]:
    """Parse JSON text or bytes safely. Returns None on error."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None


def first_present(data: dict, *keys: str, default: Any = None) -> Any:
    """Value of the first key that holds a non-empty value."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def looks_like_json(text: str) -> bool:
    """Detect a JSON object/array by inspecting the first non-blank character."""
    stripped = text.lstrip()
    return stripped.startswith("{") or stripped.startswith("[")
