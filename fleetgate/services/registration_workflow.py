# fleetgate/services/registration_workflow.py
"""
Employee self-registration and approval.

  submit   → employee row + pending entry (credential held until approval)
  approve  → user credential with a role derived from the job title,
             linked to the employee; pending entry removed
  reject   → pending entry and employee row removed

Everything goes through DualStore, so the workflow keeps working against the
local cache when the Directory is down. Store work runs in a worker thread
(asyncio.to_thread); emails are dispatched afterwards on the event loop and
never fail a step.
"""

import asyncio
import unicodedata
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from fleetgate.config import settings
from fleetgate.schemas.registration import (
    MIN_CREDENTIAL_LENGTH, EmployeeCreate, PendingRegistration, Role, UserCredential,
)
from fleetgate.services import collections
from fleetgate.services.dual_store import DualStore
from fleetgate.services.notifier import Notifier
from fleetgate.utils import email_templates
from fleetgate.utils.exceptions import DuplicateIdentity
from fleetgate.utils.logger import get_logger
from fleetgate.utils.rut import rut_variants

logger = get_logger(__name__)

# First match wins, so "jefe de taller" must come before the generic titles
ROLE_RULES = (
    ("jefe de taller", Role.ADMIN),
    ("coordinador", Role.PLANNER),
    ("supervisor", Role.SUPERVISOR),
    ("mecánico", Role.MECHANIC),
    ("guardia", Role.GUARD),
    ("asistente de repuestos", Role.REPUESTOS),
    ("chofer", Role.DRIVER),
)
DEFAULT_ROLE = Role.DRIVER
NO_JOB_TITLE = "Sin cargo"

# (recipient, (subject, html body))
Outgoing = list[tuple[Optional[str], tuple[str, str]]]


def derive_role(job_title: Optional[str], explicit: Optional[str] = None) -> Role:
    """
    Role for a job title. An explicit role stored on the job-title row wins;
    otherwise the first ROLE_RULES keyword contained in the title
    (case-insensitive), else DEFAULT_ROLE.
    """
    if explicit:
        try:
            return Role(str(explicit).strip().lower())
        except ValueError:
            logger.warning(f"[REG] Ignoring unknown role '{explicit}' on job title '{job_title}'")

    title = unicodedata.normalize("NFC", job_title or "").lower()
    for keyword, role in ROLE_RULES:
        if keyword in title:
            return role
    return DEFAULT_ROLE


class RegistrationWorkflow:
    def __init__(self, store: DualStore, notifier: Optional[Notifier] = None):
        self.store = store
        self.notifier = notifier

    def _send(self, outgoing: Outgoing):
        if self.notifier is None:
            return
        for to, (subject, body) in outgoing:
            if to:
                self.notifier.dispatch(to, subject, body)

    def _find_by_rut(self, collection: collections.Collection, field: str, national_id: str) -> list[dict]:
        """Rows whose `field` holds this RUT under any of its stored spellings."""
        rows, seen = [], set()
        for spelling in rut_variants(national_id):
            for row in self.store.read(collection, filters={field: spelling}, merge=True):
                key = str(row.get(collection.key))
                if key not in seen:
                    seen.add(key)
                    rows.append(row)
        return rows

    def _job_title(self, job_title_id=None, name: Optional[str] = None) -> Optional[dict]:
        if job_title_id is not None:
            row = self.store.find_one(collections.JOB_TITLES, job_title_id)
            if row is not None:
                return row
        if name:
            rows = self.store.read(collections.JOB_TITLES, filters={"nombre_cargo": name}, merge=True)
            return rows[0] if rows else None
        return None

    # ── submit ───────────────────────────────────────────────────────────────
    async def submit(self, employee: EmployeeCreate, raw_credential: str) -> PendingRegistration:
        if len(raw_credential or "") < MIN_CREDENTIAL_LENGTH:
            raise ValueError(f"credential must have at least {MIN_CREDENTIAL_LENGTH} characters")
        pending, outgoing = await asyncio.to_thread(self._submit, employee, raw_credential)
        self._send(outgoing)
        return pending

    def _submit(self, employee: EmployeeCreate, raw_credential: str) -> tuple[PendingRegistration, Outgoing]:
        existing = self._find_by_rut(collections.EMPLOYEES, "rut", employee.national_id)
        if existing:
            logger.info(f"[REG] Rejected duplicate registration for {employee.national_id}")
            raise DuplicateIdentity(employee.national_id)

        title = self._job_title(employee.job_title_id)
        title_name = title.get("nombre_cargo") if title else None
        now = datetime.now(timezone.utc)

        row = self.store.write(collections.EMPLOYEES, {
            **employee.to_directory_row(),
            "created_at": now.isoformat(),
        })
        pending = PendingRegistration(
            employee_id=row[collections.EMPLOYEES.key],
            national_id=employee.national_id,
            email=employee.email,
            full_name=employee.full_name,
            job_title=title_name or NO_JOB_TITLE,
            raw_credential=raw_credential,
            created_at=now,
        )
        self.store.write(collections.PENDING_REGISTRATIONS, pending.to_row())
        logger.info(f"[REG] Registration queued for {pending.full_name} (employee {pending.employee_id})")

        return pending, [
            (employee.email, email_templates.registration_received(pending.full_name)),
            (settings.APPROVER_EMAIL, email_templates.registration_to_approve(
                pending.full_name, pending.national_id, pending.job_title
            )),
        ]

    # ── queue ────────────────────────────────────────────────────────────────
    def list_pending(self) -> list[PendingRegistration]:
        entries = []
        for row in self.store.read(collections.PENDING_REGISTRATIONS, merge=True):
            try:
                entry = PendingRegistration.model_validate(row)
            except ValidationError as e:
                logger.warning(f"[REG] Skipping malformed pending entry {row.get('empleado_id')}: {e}")
                continue
            if not entry.approved:
                entries.append(entry)
        return sorted(entries, key=lambda e: e.created_at)

    def _pending(self, employee_id) -> Optional[PendingRegistration]:
        row = self.store.find_one(collections.PENDING_REGISTRATIONS, employee_id)
        if row is None:
            return None
        return PendingRegistration.model_validate(row)

    # ── decisions ────────────────────────────────────────────────────────────
    async def approve(self, employee_id: int) -> Optional[UserCredential]:
        """Create the user credential. Returns None when nothing is pending for this employee."""
        credential, outgoing = await asyncio.to_thread(self._approve, employee_id)
        self._send(outgoing)
        return credential

    def _approve(self, employee_id: int) -> tuple[Optional[UserCredential], Outgoing]:
        pending = self._pending(employee_id)
        if pending is None:
            logger.info(f"[REG] Approve {employee_id}: no pending registration")
            return None, []

        employee = self.store.find_one(collections.EMPLOYEES, employee_id) or {}
        title = self._job_title(employee.get("cargo_id"), pending.job_title)
        role = derive_role(
            title.get("nombre_cargo") if title else pending.job_title,
            explicit=title.get("rol") if title else None,
        )

        users = self._find_by_rut(collections.USERS, "usuario", pending.national_id)
        if users:
            # the existing login keeps its own clave and rol; the queued credential is discarded
            user_row = users[0]
            issued = None
            logger.warning(f"[REG] User {pending.national_id} already exists, linking it")
        else:
            issued = pending.raw_credential
            user_row = self.store.write(collections.USERS, {
                "usuario": pending.national_id,
                "clave": pending.raw_credential,
                "rol": role.value,
                "estado_usuario": True,
                "created_at": datetime.now(timezone.utc).isoformat(),
            })
        credential = UserCredential.model_validate(user_row)

        self.store.update(collections.EMPLOYEES, employee_id, {"usuario_id": credential.user_id})
        self.store.delete(collections.PENDING_REGISTRATIONS, employee_id)
        logger.info(f"[REG] Approved {pending.full_name} as {credential.role.value}")

        return credential, [
            (pending.email, email_templates.registration_approved(
                pending.full_name, credential.login_name, issued, credential.role.value
            )),
        ]

    async def reject(self, employee_id: int) -> bool:
        """Drop the pending entry and the employee row. False when nothing was pending."""
        return await asyncio.to_thread(self._reject, employee_id)

    def _reject(self, employee_id: int) -> bool:
        pending = self._pending(employee_id)
        if pending is None:
            logger.info(f"[REG] Reject {employee_id}: no pending registration")
            return False
        self.store.delete(collections.PENDING_REGISTRATIONS, employee_id)
        self.store.delete(collections.EMPLOYEES, employee_id)
        logger.info(f"[REG] Rejected registration of {pending.full_name}")
        return True
