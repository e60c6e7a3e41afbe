# fleetgate/routers/gate.py
"""
Gate endpoints.
POST /gate/entry, /gate/exit   — manual plate entry by the guard
POST /gate/scan/{kind}         — raw QR payload from the scanner
GET  /gate/vehicles/{plate}/state
GET  /gate/vehicles/{plate}/qr   — payload to print into the vehicle QR code
GET  /gate/history/{kind}      — capped history log, newest first

Denials are normal 200 responses with allowed=false and a reason.
"""

from fastapi import APIRouter, Depends, Query

from fleetgate.config import settings
from fleetgate.dependencies import get_gate_controller
from fleetgate.schemas.gate import GateRequest, GateResult, ScanRequest, VehicleStateOut
from fleetgate.schemas.movement import MovementKind
from fleetgate.services import qr_codec
from fleetgate.services.gate_controller import GateController

router = APIRouter()


@router.post("/gate/entry", response_model=GateResult, summary="Register a vehicle entry")
async def register_entry(body: GateRequest, controller: GateController = Depends(get_gate_controller)):
    return await controller.register_entry(
        body.plate,
        observations=body.observations,
        fuel_level=body.fuel_level,
        visible_damage=body.visible_damage,
    )


@router.post("/gate/exit", response_model=GateResult, summary="Register a vehicle exit")
async def register_exit(body: GateRequest, controller: GateController = Depends(get_gate_controller)):
    return await controller.register_exit(body.plate)


@router.post("/gate/scan/{kind}", response_model=GateResult, summary="Entry/exit from a QR scan")
async def scan(kind: MovementKind, body: ScanRequest,
               controller: GateController = Depends(get_gate_controller)):
    """Accepts JSON-object, /vehiculo/<plate> URL and bare-plate payloads."""
    return await controller.handle_scan(body.payload, kind)


@router.get("/gate/vehicles/{plate}/state", response_model=VehicleStateOut, summary="Is the vehicle inside?")
def vehicle_state(plate: str, controller: GateController = Depends(get_gate_controller)):
    state = controller.vehicle_state(plate)
    last = state.last_movement
    return VehicleStateOut(
        vehicle_id=state.vehicle_id,
        is_inside=state.is_inside,
        last_kind=last.kind if last else None,
        last_timestamp=last.timestamp if last else None,
        last_reason=last.reason if last else None,
    )


@router.get("/gate/history/{kind}", summary="Authorized entry / exit history")
def history(kind: MovementKind, limit: int = Query(50, ge=1, le=500),
            controller: GateController = Depends(get_gate_controller)):
    return controller.ledger.history(kind, limit)


@router.get("/gate/vehicles/{plate}/qr", summary="QR payload for a vehicle")
def vehicle_qr(plate: str):
    """The string to encode in the vehicle's QR code; scanning it resolves back to the plate."""
    return {"vehicle_id": qr_codec.normalize_plate(plate),
            "payload": qr_codec.vehicle_url(settings.PUBLIC_BASE_URL, plate)}
