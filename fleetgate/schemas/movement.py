# fleetgate/schemas/movement.py
from enum import Enum
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class MovementKind(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


class MovementRecord(BaseModel):
    """One entry/exit event for a plate, normalized from any movement log."""
    id: Optional[int]
    vehicle_id: str
    kind: MovementKind
    timestamp: Optional[datetime]     # None = unparsable; sorts as oldest
    reason: Optional[str] = None
    source_log: str
    appointment_ref: Optional[int] = None
    authorized: bool = True           # False = a recorded denied entry attempt

    class Config:
        frozen = True


class VehicleState(BaseModel):
    vehicle_id: str
    last_movement: Optional[MovementRecord]   # last *authorized* movement
    is_inside: bool
