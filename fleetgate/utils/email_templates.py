# fleetgate/utils/email_templates.py
"""Subjects and minimal HTML bodies for outbound notifications."""

from html import escape
from typing import Optional


def _page(title: str, rows: dict) -> str:
    cells = "".join(
        f"<tr><td><strong>{escape(str(k))}</strong></td><td>{escape(str(v))}</td></tr>"
        for k, v in rows.items() if v not in (None, "")
    )
    return f"<h2>{escape(title)}</h2><table>{cells}</table>"


def gate_movement(kind: str, plate: str, when: str, details: dict) -> tuple[str, str]:
    label = "Ingreso" if kind == "entry" else "Salida"
    subject = f"{label} de Vehículo - {plate}"
    return subject, _page(subject, {"Patente": plate, "Fecha": when, **details})


def registration_received(full_name: str) -> tuple[str, str]:
    subject = "Solicitud de registro recibida"
    return subject, _page(subject, {
        "Nombre": full_name,
        "Estado": "Pendiente de aprobación",
    })


def registration_to_approve(full_name: str, national_id: str, job_title: str) -> tuple[str, str]:
    subject = f"Nueva solicitud de registro - {full_name}"
    return subject, _page(subject, {"Nombre": full_name, "RUT": national_id, "Cargo": job_title})


def registration_approved(full_name: str, login_name: str, credential: Optional[str], role: str) -> tuple[str, str]:
    """credential=None: the account already existed, so its current password stays valid."""
    subject = "Tu cuenta ha sido aprobada"
    return subject, _page(subject, {
        "Nombre": full_name,
        "Usuario": login_name,
        "Contraseña": credential if credential is not None else "Tu contraseña actual (la cuenta ya existía)",
        "Rol": role,
    })
