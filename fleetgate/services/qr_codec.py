# fleetgate/services/qr_codec.py
"""
QR payload decoding for gate scans.

Printed vehicle QR codes have carried three shapes over time:
  1. JSON object:  {"patente": "ABC123", "tipo": "vehiculo", ...}
  2. Vehicle URL:  https://<host>/vehiculo/ABC123   (percent-encoded)
  3. Bare plate:   ABC123

All three decode to the same normalized plate.
"""

from typing import Union
from urllib.parse import quote, unquote

from fleetgate.utils.exceptions import MalformedScanPayload
from fleetgate.utils.json_parser import first_present, looks_like_json, safe_parse_json
from fleetgate.utils.plates import normalize_plate

__all__ = ["decode", "normalize_plate", "vehicle_url"]

VEHICLE_SEGMENT = "/vehiculo/"
PLATE_KEYS = ("patente", "patente_vehiculo", "plate")


def _from_object(data: dict) -> str:
    plate = first_present(data, *PLATE_KEYS)
    if plate is None:
        raise MalformedScanPayload(f"QR object has no vehicle identifier (keys: {sorted(data)})")
    return normalize_plate(str(plate))


def _from_url(text: str) -> str:
    tail = text.split(VEHICLE_SEGMENT)[-1]
    for sep in ("?", "#"):
        tail = tail.split(sep, 1)[0]
    return normalize_plate(unquote(tail.strip("/")))


def decode(payload: Union[str, bytes, dict]) -> str:
    if isinstance(payload, dict):
        plate = _from_object(payload)
    else:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        if not isinstance(payload, str):
            raise MalformedScanPayload(f"Unsupported QR payload type: {type(payload).__name__}")

        text = payload.strip()
        parsed = safe_parse_json(text) if looks_like_json(text) else None
        if isinstance(parsed, dict):
            plate = _from_object(parsed)
        elif parsed is not None:
            raise MalformedScanPayload(f"QR JSON payload must be an object, got {type(parsed).__name__}")
        elif VEHICLE_SEGMENT in text:
            plate = _from_url(text)
        else:
            plate = normalize_plate(text)

    if not plate:
        raise MalformedScanPayload("QR payload yielded an empty vehicle identifier")
    return plate


def vehicle_url(base_url: str, plate: str) -> str:
    """URL printed into a vehicle's QR code. decode(vehicle_url(b, p)) == normalize_plate(p)."""
    return f"{base_url.rstrip('/')}{VEHICLE_SEGMENT}{quote(normalize_plate(plate), safe='')}"
