# fleetgate/services/appointment_matcher.py
"""
Finds the diagnostic appointment that accompanies a gate entry.

A confirmed appointment authorizes entry regardless of its date: one for
today is preferred, otherwise the one whose date is nearest to today.
When the Directory has no vehicle record for the plate but a confirmed
appointment exists, the vehicle is only referenced by plate.
"""

from datetime import date
from typing import Optional

from pydantic import ValidationError

from fleetgate.schemas.appointment import Appointment
from fleetgate.schemas.vehicle import KnownVehicle, ReferencedVehicle, VehicleRecord, VehicleRef
from fleetgate.services import collections
from fleetgate.services.dual_store import DualStore
from fleetgate.utils.logger import get_logger
from fleetgate.utils.plates import normalize_plate, same_plate

logger = get_logger(__name__)


def is_for_today(appointment: Appointment, today: date) -> bool:
    """Calendar-date equality on the confirmed date, falling back to the requested one."""
    return appointment.effective_date is not None and appointment.effective_date == today


def _distance(appointment: Appointment, today: date) -> int:
    if appointment.effective_date is None:
        return 10 ** 6
    return abs((appointment.effective_date - today).days)


def vehicle_ref(plate: str, record: Optional[VehicleRecord],
                appointment: Optional[Appointment]) -> Optional[VehicleRef]:
    if record is not None:
        return KnownVehicle(record=record)
    if appointment is not None and appointment.is_confirmed:
        return ReferencedVehicle(plate=plate)
    return None


class AppointmentMatcher:
    def __init__(self, store: DualStore):
        self.store = store

    def _appointments_for(self, plate: str) -> list[Appointment]:
        rows = self.store.read(collections.APPOINTMENTS, merge=True)
        appointments = []
        for row in rows:
            if not same_plate(row.get("patente_vehiculo"), plate):
                continue
            try:
                appointments.append(Appointment.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    f"[APPT] Skipping malformed appointment {row.get('id_solicitud_diagnostico')}: {e}"
                )
        return appointments

    def match_confirmed(self, vehicle_id: str, today: Optional[date] = None) -> Optional[Appointment]:
        today = today or date.today()
        confirmed = [a for a in self._appointments_for(normalize_plate(vehicle_id)) if a.is_confirmed]
        if not confirmed:
            return None
        # min() keeps the first of equal distances, so store order breaks ties
        return min(confirmed, key=lambda a: _distance(a, today))

    def find_any(self, vehicle_id: str) -> Optional[Appointment]:
        """Any appointment for the plate, whatever its status."""
        appointments = self._appointments_for(normalize_plate(vehicle_id))
        return appointments[0] if appointments else None

    def find_vehicle(self, vehicle_id: str) -> Optional[VehicleRecord]:
        plate = normalize_plate(vehicle_id)
        for row in self.store.read(collections.VEHICLES, merge=True):
            if same_plate(row.get("patente_vehiculo"), plate):
                try:
                    return VehicleRecord.model_validate(row)
                except ValidationError as e:
                    logger.warning(f"[APPT] Vehicle row for {plate} is malformed: {e}")
                    return None
        return None

    def lookup(self, vehicle_id: str, today: Optional[date] = None):
        """(VehicleRef or None, confirmed Appointment or None) for a plate."""
        plate = normalize_plate(vehicle_id)
        record = self.find_vehicle(plate)
        appointment = self.match_confirmed(plate, today)
        return vehicle_ref(plate, record, appointment), appointment
