# fleetgate/services/gate_controller.py
"""
Gate entry/exit orchestration.

Entry:
  1. Resolve the vehicle (Directory record, or plate referenced by a
     confirmed appointment). Neither → denied, and the attempt is logged.
  2. StateResolver: no entry while already inside.
  3. Append the movement to the ledger (active + history log), re-checking
     that nobody else moved the vehicle in between.
  4. Appointment entries put the linked work order "en curso".
  5. Gate alert email, dispatched in the background.

Exit only needs the ledger: a plate whose last authorized movement is an
entry may leave, whether or not the Directory knows the vehicle.

One operation per plate at a time: a second request for a plate already in
flight (double scan) is denied with "operation in progress".

Store round-trips are blocking, so each flow runs in a worker thread
(asyncio.to_thread); the alert email is dispatched back on the event loop.
"""

import asyncio
import threading
from datetime import date, datetime, timezone
from typing import Optional, Union

from fleetgate.config import settings
from fleetgate.schemas.appointment import Appointment
from fleetgate.schemas.gate import GateResult
from fleetgate.schemas.movement import MovementKind, MovementRecord, VehicleState
from fleetgate.schemas.vehicle import KnownVehicle, ReferencedVehicle, VehicleRef
from fleetgate.services import collections, qr_codec
from fleetgate.services.appointment_matcher import AppointmentMatcher, is_for_today
from fleetgate.services.dual_store import DualStore, next_record_id
from fleetgate.services.movement_ledger import MovementLedger
from fleetgate.services.notifier import Notifier
from fleetgate.services.state_resolver import DenialReason, StateResolver, authorize, last_authorized_movement
from fleetgate.utils import email_templates
from fleetgate.utils.exceptions import MovementConflict, StoreError
from fleetgate.utils.logger import get_logger
from fleetgate.utils.plates import normalize_plate

logger = get_logger(__name__)

WORK_ORDER_IN_PROGRESS = "en curso"

# (subject, html body)
Alert = tuple[str, str]


class PlateGuard:
    """Set of plates with an operation in flight."""

    def __init__(self):
        self._lock = threading.Lock()
        self._plates: set[str] = set()

    def claim(self, plate: str) -> bool:
        with self._lock:
            if plate in self._plates:
                return False
            self._plates.add(plate)
            return True

    def release(self, plate: str):
        with self._lock:
            self._plates.discard(plate)


def _denied(plate: str, kind: MovementKind, reason: DenialReason) -> GateResult:
    return GateResult(allowed=False, vehicle_id=plate, kind=kind, reason=reason.value)


class GateController:
    def __init__(self, store: DualStore, notifier: Optional[Notifier] = None,
                 guard: Optional[PlateGuard] = None):
        self.store = store
        self.notifier = notifier
        self.guard = guard or PlateGuard()
        self.ledger = MovementLedger(store)
        self.resolver = StateResolver(self.ledger)
        self.matcher = AppointmentMatcher(store)

    # ── public operations ────────────────────────────────────────────────────
    async def register_entry(
        self,
        vehicle_id: str,
        *,
        method: str = "manual",
        observations: Optional[str] = None,
        fuel_level: Optional[str] = None,
        visible_damage: Optional[str] = None,
        today: Optional[date] = None,
    ) -> GateResult:
        plate = normalize_plate(vehicle_id)
        if not plate:
            return _denied(plate, MovementKind.ENTRY, DenialReason.VEHICLE_NOT_REGISTERED)
        if not self.guard.claim(plate):
            logger.info(f"[GATE] ENTRY {plate}: operation already in progress")
            return _denied(plate, MovementKind.ENTRY, DenialReason.OPERATION_IN_PROGRESS)
        try:
            details = {
                "metodo_registro": method,
                "observaciones": observations,
                "nivel_combustible": fuel_level,
                "danos_visibles": visible_damage,
            }
            details = {k: v for k, v in details.items() if v is not None}
            result, alert = await asyncio.to_thread(self._enter, plate, details, today or date.today())
        finally:
            self.guard.release(plate)
        self._send(alert)
        return result

    async def register_exit(self, vehicle_id: str, *, method: str = "manual") -> GateResult:
        plate = normalize_plate(vehicle_id)
        if not plate:
            return _denied(plate, MovementKind.EXIT, DenialReason.NO_PRIOR_ENTRY)
        if not self.guard.claim(plate):
            logger.info(f"[GATE] EXIT {plate}: operation already in progress")
            return _denied(plate, MovementKind.EXIT, DenialReason.OPERATION_IN_PROGRESS)
        try:
            result, alert = await asyncio.to_thread(self._leave, plate, method)
        finally:
            self.guard.release(plate)
        self._send(alert)
        return result

    async def handle_scan(self, payload: Union[str, bytes, dict], kind: MovementKind,
                          today: Optional[date] = None) -> GateResult:
        """Decode a QR payload (MalformedScanPayload propagates) and run the movement."""
        plate = qr_codec.decode(payload)
        logger.info(f"[GATE] QR scan → {plate} ({kind.value})")
        if kind == MovementKind.ENTRY:
            return await self.register_entry(plate, method="QR", today=today)
        return await self.register_exit(plate, method="QR")

    def vehicle_state(self, vehicle_id: str) -> VehicleState:
        return self.resolver.resolve(vehicle_id)

    # ── flows ────────────────────────────────────────────────────────────────
    def _enter(self, plate: str, details: dict, today: date) -> tuple[GateResult, Optional[Alert]]:
        vehicle, appointment = self.matcher.lookup(plate, today)

        if vehicle is None:
            reason = (
                DenialReason.APPOINTMENT_NOT_CONFIRMED
                if self.matcher.find_any(plate) is not None
                else DenialReason.VEHICLE_NOT_REGISTERED
            )
            self.ledger.record_denied_attempt(plate, reason.value)
            logger.info(f"[GATE] ENTRY {plate} denied: {reason.value}")
            return _denied(plate, MovementKind.ENTRY, reason), None

        records = self.ledger.records_for(plate)
        decision = authorize(MovementKind.ENTRY, records)
        if not decision:
            logger.info(f"[GATE] ENTRY {plate} denied: {decision.reason.value}")
            return _denied(plate, MovementKind.ENTRY, decision.reason), None

        for_today = appointment is not None and is_for_today(appointment, today)
        if appointment is not None:
            reason = f"Diagnóstico - {appointment.problem_type or 'N/A'}"
        elif details.get("metodo_registro") == "QR":
            reason = "Acceso autorizado (QR)"
        else:
            reason = "Acceso autorizado"

        movement = MovementRecord(
            id=next_record_id(),
            vehicle_id=plate,
            kind=MovementKind.ENTRY,
            timestamp=datetime.now(timezone.utc),
            reason=reason,
            source_log=collections.ENTRY_REGISTRATIONS.table,
            appointment_ref=appointment.id if appointment else None,
        )
        last = last_authorized_movement(records)
        try:
            self.ledger.record_movement(
                movement,
                appointment=appointment,
                for_today=for_today,
                vehicle_status=vehicle.record.status if isinstance(vehicle, KnownVehicle) else None,
                details=details,
                expected_last_id=last.id if last else None,
            )
        except MovementConflict as e:
            logger.warning(f"[GATE] ENTRY {plate} aborted: {e}")
            return _denied(plate, MovementKind.ENTRY, DenialReason.STATE_CHANGED), None

        if appointment is not None:
            self._start_work_order(appointment)

        logger.info(
            f"[GATE] ENTRY {plate} authorized"
            + (f" | appointment={appointment.id} today={for_today}" if appointment else "")
        )
        return GateResult(
            allowed=True,
            vehicle_id=plate,
            kind=MovementKind.ENTRY,
            movement=movement,
            appointment_id=appointment.id if appointment else None,
            for_today=for_today,
            referenced_only=isinstance(vehicle, ReferencedVehicle),
        ), self._alert(movement, vehicle, appointment)

    def _leave(self, plate: str, method: str) -> tuple[GateResult, Optional[Alert]]:
        records = self.ledger.records_for(plate)
        decision = authorize(MovementKind.EXIT, records)
        if not decision:
            logger.info(f"[GATE] EXIT {plate} denied: {decision.reason.value}")
            return _denied(plate, MovementKind.EXIT, decision.reason), None

        record = self.matcher.find_vehicle(plate)
        vehicle = KnownVehicle(record=record) if record else ReferencedVehicle(plate=plate)
        movement = MovementRecord(
            id=next_record_id(),
            vehicle_id=plate,
            kind=MovementKind.EXIT,
            timestamp=datetime.now(timezone.utc),
            reason="Salida registrada por QR" if method == "QR" else "Salida autorizada",
            source_log=collections.EXIT_REGISTRATIONS.table,
        )
        last = last_authorized_movement(records)
        try:
            self.ledger.record_movement(
                movement,
                vehicle_status=record.status if record else None,
                details={"metodo_registro": method},
                expected_last_id=last.id if last else None,
            )
        except MovementConflict as e:
            logger.warning(f"[GATE] EXIT {plate} aborted: {e}")
            return _denied(plate, MovementKind.EXIT, DenialReason.STATE_CHANGED), None

        logger.info(f"[GATE] EXIT {plate} authorized")
        result = GateResult(allowed=True, vehicle_id=plate, kind=MovementKind.EXIT, movement=movement,
                            referenced_only=record is None)
        return result, self._alert(movement, vehicle, None)

    # ── side effects ─────────────────────────────────────────────────────────
    def _start_work_order(self, appointment: Appointment):
        """Put the appointment's work order "en curso". Failures never undo the entry."""
        changes = {"estado_ot": WORK_ORDER_IN_PROGRESS}
        try:
            if appointment.work_order_id is not None:
                keys = [appointment.work_order_id]
            else:
                rows = self.store.read(
                    collections.WORK_ORDERS,
                    filters={"solicitud_diagnostico_id": appointment.id},
                    merge=True,
                )
                keys = [row.get(collections.WORK_ORDERS.key) for row in rows]
            for key in keys:
                if self.store.update(collections.WORK_ORDERS, key, changes) is not None:
                    logger.info(f"[GATE] Work order {key} → {WORK_ORDER_IN_PROGRESS}")
        except StoreError as e:
            logger.error(f"[GATE] Could not update work order for appointment {appointment.id}: {e}")

    def _branch_name(self, vehicle: VehicleRef) -> Optional[str]:
        if not isinstance(vehicle, KnownVehicle) or vehicle.record.branch_id is None:
            return None
        try:
            branch = self.store.find_one(collections.BRANCHES, vehicle.record.branch_id)
        except StoreError as e:
            logger.debug(f"[GATE] Branch lookup failed: {e}")
            return None
        return branch.get("nombre_sucursal") if branch else None

    def _alert(self, movement: MovementRecord, vehicle: VehicleRef,
               appointment: Optional[Appointment]) -> Optional[Alert]:
        """Gate alert email (subject, body), or None when alerts are off."""
        if self.notifier is None or not settings.GATE_ALERT_EMAIL:
            return None
        details = {"Motivo": movement.reason, "Sucursal": self._branch_name(vehicle)}
        if isinstance(vehicle, KnownVehicle):
            details["Año"] = vehicle.record.year
            details["Kilometraje"] = vehicle.record.mileage
            details["ID del Vehículo"] = vehicle.record.id
        if appointment is not None:
            details["Cita"] = appointment.effective_date
            details["Horario"] = appointment.time_slot
        return email_templates.gate_movement(
            movement.kind.value, movement.vehicle_id, movement.timestamp.isoformat(), details
        )

    def _send(self, alert: Optional[Alert]):
        if alert is not None:
            subject, body = alert
            self.notifier.dispatch(settings.GATE_ALERT_EMAIL, subject, body)
