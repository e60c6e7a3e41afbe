# fleetgate/schemas/appointment.py
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Optional

from fleetgate.utils.plates import normalize_plate


class AppointmentStatus(str, Enum):
    PENDING = "pendiente_confirmacion"
    CONFIRMED = "confirmada"
    REJECTED = "rechazada"
    COMPLETED = "completada"


_STATUS_ALIASES = {
    "pending": AppointmentStatus.PENDING,
    "confirmed": AppointmentStatus.CONFIRMED,
    "rejected": AppointmentStatus.REJECTED,
    "completed": AppointmentStatus.COMPLETED,
}


def parse_calendar_date(value) -> Optional[date]:
    """Accepts dates, datetimes and ISO strings ('2026-10-22', '2026-10-22T09:00:00Z')."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


class Appointment(BaseModel):
    """A `solicitud_diagnostico` row (diagnostic appointment request)."""
    id: Optional[int] = Field(None, alias="id_solicitud_diagnostico")
    vehicle_id: Optional[str] = Field(None, alias="patente_vehiculo")
    vehicle_record_id: Optional[int] = Field(None, alias="vehiculo_id")
    problem_type: Optional[str] = Field(None, alias="tipo_problema")
    requested_date: Optional[date] = Field(None, alias="fecha_solicitada")
    confirmed_date: Optional[date] = Field(None, alias="fecha_confirmada")
    requested_slot: Optional[str] = Field(None, alias="bloque_horario")
    confirmed_slot: Optional[str] = Field(None, alias="bloque_horario_confirmado")
    status: AppointmentStatus = Field(AppointmentStatus.PENDING, alias="estado_solicitud")
    priority: str = Field("normal", alias="prioridad")
    work_order_id: Optional[int] = Field(None, alias="orden_trabajo_id")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def normalize_vehicle_id(cls, v):
        return normalize_plate(v) or None

    @field_validator("requested_date", "confirmed_date", mode="before")
    @classmethod
    def coerce_date(cls, v):
        return parse_calendar_date(v)

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v):
        if v is None:
            return AppointmentStatus.PENDING
        text = str(v).strip().lower()
        return _STATUS_ALIASES.get(text, text)

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v):
        return v or "normal"

    @property
    def effective_date(self) -> Optional[date]:
        return self.confirmed_date or self.requested_date

    @property
    def time_slot(self) -> Optional[str]:
        return self.confirmed_slot or self.requested_slot

    @property
    def is_confirmed(self) -> bool:
        return self.status == AppointmentStatus.CONFIRMED
