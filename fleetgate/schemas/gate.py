# fleetgate/schemas/gate.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Union

from fleetgate.schemas.movement import MovementKind, MovementRecord


class GateRequest(BaseModel):
    """Manual plate entry at the gate."""
    plate: str = Field(..., min_length=1, examples=["ABC123"])
    observations: Optional[str] = None
    fuel_level: Optional[str] = None
    visible_damage: Optional[str] = None


class ScanRequest(BaseModel):
    """Raw QR payload as read by the scanner (JSON text, URL or bare plate)."""
    payload: Union[str, dict]


class GateResult(BaseModel):
    allowed: bool
    vehicle_id: str
    kind: MovementKind
    reason: Optional[str] = None              # denial reason, None when allowed
    movement: Optional[MovementRecord] = None
    appointment_id: Optional[int] = None
    for_today: bool = False
    referenced_only: bool = False             # no Directory vehicle, admitted on appointment


class VehicleStateOut(BaseModel):
    vehicle_id: str
    is_inside: bool
    last_kind: Optional[MovementKind] = None
    last_timestamp: Optional[datetime] = None
    last_reason: Optional[str] = None
