# fleetgate/schemas/vehicle.py
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, Union

from fleetgate.utils.plates import normalize_plate


class VehicleRecord(BaseModel):
    """A Directory `vehiculo` row. Field aliases are the Directory column names."""
    id: Optional[int] = Field(None, alias="id_vehiculo")
    plate: str = Field(..., alias="patente_vehiculo")
    status: Optional[str] = Field(None, alias="estado_vehiculo")
    year: Optional[int] = Field(None, alias="anio_vehiculo")
    mileage: Optional[int] = Field(None, alias="kilometraje_vehiculo")
    model_id: Optional[int] = Field(None, alias="modelo_vehiculo_id")
    type_id: Optional[int] = Field(None, alias="tipo_vehiculo_id")
    branch_id: Optional[int] = Field(None, alias="sucursal_id")
    notes: Optional[str] = Field(None, alias="observaciones")

    @field_validator("plate")
    @classmethod
    def normalize_plate_field(cls, v):
        return normalize_plate(v)

    class Config:
        populate_by_name = True
        extra = "ignore"


class KnownVehicle(BaseModel):
    """Vehicle with a full Directory record."""
    kind: Literal["known"] = "known"
    record: VehicleRecord

    @property
    def plate(self) -> str:
        return self.record.plate


class ReferencedVehicle(BaseModel):
    """Vehicle only referenced by plate (e.g. from a confirmed appointment)."""
    kind: Literal["referenced"] = "referenced"
    plate: str

    @field_validator("plate")
    @classmethod
    def normalize_plate_field(cls, v):
        return normalize_plate(v)


VehicleRef = Union[KnownVehicle, ReferencedVehicle]
