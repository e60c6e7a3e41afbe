# fleetgate/schemas/registration.py
import re
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional

from fleetgate.utils.rut import normalize_rut

MIN_CREDENTIAL_LENGTH = 6
_EMAIL_RE = re.compile(r"\S+@\S+\.\S+")


class Role(str, Enum):
    ADMIN = "admin"
    PLANNER = "planner"
    SUPERVISOR = "supervisor"
    MECHANIC = "mechanic"
    GUARD = "guard"
    REPUESTOS = "repuestos"
    DRIVER = "driver"
    JEFE_TALLER = "jefe_taller"


class EmployeeCreate(BaseModel):
    """Self-registration data for a new employee."""
    national_id: str = Field(..., min_length=1, description="RUT, e.g. 11.111.111-1")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    second_last_name: Optional[str] = None
    birth_date: date
    email: str
    phone: str = Field(..., min_length=1)
    phone_alt: Optional[str] = None
    job_title_id: int

    @field_validator("national_id", "first_name", "last_name", "phone")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("national_id")
    @classmethod
    def canonical_rut(cls, v: str) -> str:
        return normalize_rut(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip()
        if not _EMAIL_RE.fullmatch(v):
            raise ValueError("invalid email address")
        return v

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_directory_row(self) -> dict:
        """Shape of an `empleado` row."""
        return {
            "rut": self.national_id,
            "nombre": self.first_name,
            "apellido_paterno": self.last_name,
            "apellido_materno": self.second_last_name or None,
            "fecha_nacimiento": self.birth_date.isoformat(),
            "email": self.email,
            "telefono1": self.phone,
            "telefono2": self.phone_alt or None,
            "cargo_id": self.job_title_id,
        }


class RegistrationRequest(EmployeeCreate):
    """HTTP body for self-registration."""
    password: str = Field(..., min_length=MIN_CREDENTIAL_LENGTH)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self


class PendingRegistration(BaseModel):
    """Queue entry awaiting approval. Aliases are the stored field names."""
    employee_id: int = Field(..., alias="empleado_id")
    national_id: str = Field(..., alias="rut")
    email: Optional[str] = None
    full_name: str = Field("", alias="nombre_completo")
    job_title: str = Field("", alias="cargo")
    raw_credential: str = Field(..., alias="password")
    approved: bool = Field(False, alias="aprobado")
    created_at: datetime

    class Config:
        populate_by_name = True
        extra = "ignore"

    def to_row(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class PendingRegistrationOut(BaseModel):
    """Public view of a pending entry (no credential)."""
    employee_id: int
    national_id: str
    email: Optional[str]
    full_name: str
    job_title: str
    created_at: datetime


class UserCredential(BaseModel):
    """A `usuario` row."""
    user_id: int = Field(..., alias="id_usuario")
    login_name: str = Field(..., alias="usuario")
    credential_secret: str = Field(..., alias="clave")
    role: Role = Field(..., alias="rol")
    enabled: bool = Field(True, alias="estado_usuario")

    class Config:
        populate_by_name = True
        extra = "ignore"


class UserCredentialOut(BaseModel):
    user_id: int
    login_name: str
    role: Role
    enabled: bool
