# fleetgate/services/state_resolver.py
"""
Presence state and movement authorization for a plate.

Both directions share one lookup, last_authorized_movement(): denied entry
attempts recorded in the ledger are skipped, so they never count as the
vehicle being inside.

  Entry: denied "already inside"  iff the last authorized movement is an entry.
  Exit:  denied "no prior entry"  iff there is no authorized movement,
         denied "already exited"  iff the last authorized movement is an exit,
         allowed                  iff it is an entry.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from fleetgate.schemas.movement import MovementKind, MovementRecord, VehicleState
from fleetgate.utils.plates import normalize_plate


class DenialReason(str, Enum):
    ALREADY_INSIDE = "already inside"
    ALREADY_EXITED = "already exited"
    NO_PRIOR_ENTRY = "no prior entry"
    VEHICLE_NOT_REGISTERED = "vehicle not registered"
    APPOINTMENT_NOT_CONFIRMED = "appointment not confirmed"
    OPERATION_IN_PROGRESS = "operation in progress"
    STATE_CHANGED = "state changed"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenialReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Decision(True)


def denied(reason: DenialReason) -> Decision:
    return Decision(False, reason)


def last_authorized_movement(records: Sequence[MovementRecord]) -> Optional[MovementRecord]:
    """`records` must be newest first (MovementLedger.records_for order)."""
    for record in records:
        if record.authorized:
            return record
    return None


def resolve(vehicle_id: str, records: Sequence[MovementRecord]) -> VehicleState:
    last = last_authorized_movement(records)
    return VehicleState(
        vehicle_id=normalize_plate(vehicle_id),
        last_movement=last,
        is_inside=last is not None and last.kind == MovementKind.ENTRY,
    )


def authorize(proposed: MovementKind, records: Sequence[MovementRecord]) -> Decision:
    last = last_authorized_movement(records)
    if proposed == MovementKind.ENTRY:
        if last is not None and last.kind == MovementKind.ENTRY:
            return denied(DenialReason.ALREADY_INSIDE)
        return ALLOWED

    if last is None:
        return denied(DenialReason.NO_PRIOR_ENTRY)
    if last.kind == MovementKind.EXIT:
        return denied(DenialReason.ALREADY_EXITED)
    return ALLOWED


class StateResolver:
    """Binds the pure rules to a MovementLedger."""

    def __init__(self, ledger):
        self.ledger = ledger

    def resolve(self, vehicle_id: str) -> VehicleState:
        return resolve(vehicle_id, self.ledger.records_for(vehicle_id))

    def authorize(self, vehicle_id: str, proposed: MovementKind) -> Decision:
        return authorize(proposed, self.ledger.records_for(vehicle_id))
