# fleetgate/services/movement_ledger.py
"""
MovementLedger — merged, time-ordered view of entry/exit movements per plate.

Movement evidence lives in four Directory logs that never shared a schema:

  log                  kind   timestamp field   retention
  registros_ingreso    entry  fecha             unbounded (also holds denied attempts)
  registros_salida     exit   fecha             unbounded
  historial_autorizados entry fecha_busqueda    capped (HISTORY_LOG_CAP, newest kept)
  historial_salidas    exit   fecha_salida      capped

records_for() reads every log through DualStore (remote ∪ local cache), tags
each row with the kind of its log, normalizes the timestamp and sorts newest
first. Ties keep source order (active logs before history logs); rows with a
missing/unparsable timestamp sort as oldest. A movement written to an active
log and a history log carries the same id and is reported once.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fleetgate.config import settings
from fleetgate.schemas.appointment import Appointment
from fleetgate.schemas.movement import MovementKind, MovementRecord
from fleetgate.services import collections
from fleetgate.services.collections import Collection
from fleetgate.services.dual_store import DualStore, next_record_id
from fleetgate.services.state_resolver import last_authorized_movement
from fleetgate.utils.exceptions import MovementConflict
from fleetgate.utils.logger import get_logger
from fleetgate.utils.plates import normalize_plate, same_plate

logger = get_logger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)
_UNCHECKED = object()


@dataclass(frozen=True)
class LogSource:
    collection: Collection
    kind: MovementKind
    timestamp_field: str
    capped: bool = False


ENTRY_ACTIVE = LogSource(collections.ENTRY_REGISTRATIONS, MovementKind.ENTRY, "fecha")
EXIT_ACTIVE = LogSource(collections.EXIT_REGISTRATIONS, MovementKind.EXIT, "fecha")
ENTRY_HISTORY = LogSource(collections.ENTRY_HISTORY, MovementKind.ENTRY, "fecha_busqueda", capped=True)
EXIT_HISTORY = LogSource(collections.EXIT_HISTORY, MovementKind.EXIT, "fecha_salida", capped=True)

SOURCES = (ENTRY_ACTIVE, EXIT_ACTIVE, ENTRY_HISTORY, EXIT_HISTORY)

_ACTIVE = {MovementKind.ENTRY: ENTRY_ACTIVE, MovementKind.EXIT: EXIT_ACTIVE}
_HISTORY = {MovementKind.ENTRY: ENTRY_HISTORY, MovementKind.EXIT: EXIT_HISTORY}


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 string or datetime → aware UTC datetime. None when unparsable."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str) and value.strip():
        try:
            ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _is_authorized(row: dict, kind: MovementKind) -> bool:
    if kind == MovementKind.EXIT:
        return row.get("estado") != "denegado"
    return row.get("estado") == "autorizado" or row.get("autorizado") is True


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def newest_first(records: list[MovementRecord]) -> list[MovementRecord]:
    # equal timestamps fall back to the creation-derived id; sorted() is stable
    # with reverse=True, so rows without an id keep source order
    return sorted(records, key=lambda r: (r.timestamp or _OLDEST, r.id or 0), reverse=True)


class MovementLedger:
    def __init__(self, store: DualStore, history_cap: int = None):
        self.store = store
        self.history_cap = history_cap if history_cap is not None else settings.HISTORY_LOG_CAP

    def _to_record(self, source: LogSource, row: dict) -> MovementRecord:
        return MovementRecord(
            id=_to_int(row.get("id")),
            vehicle_id=normalize_plate(row.get("patente")),
            kind=source.kind,
            timestamp=parse_timestamp(row.get(source.timestamp_field)),
            reason=row.get("motivo"),
            source_log=source.collection.table,
            appointment_ref=_to_int(row.get("solicitud_diagnostico_id")),
            authorized=_is_authorized(row, source.kind),
        )

    def records_for(self, vehicle_id: str) -> list[MovementRecord]:
        """All movements for a plate, newest first."""
        plate = normalize_plate(vehicle_id)
        records, seen = [], set()
        for source in SOURCES:
            for row in self.store.read(source.collection, merge=True):
                if not same_plate(row.get("patente"), plate):
                    continue
                record = self._to_record(source, row)
                if record.id is not None:
                    if (record.kind, record.id) in seen:
                        continue
                    seen.add((record.kind, record.id))
                records.append(record)
        return newest_first(records)

    # ── appends ─────────────────────────────────────────────────────────────
    def record_movement(
        self,
        movement: MovementRecord,
        *,
        appointment: Optional[Appointment] = None,
        for_today: bool = False,
        vehicle_status: Optional[str] = None,
        details: Optional[dict] = None,
        expected_last_id=_UNCHECKED,
    ) -> MovementRecord:
        """
        Append an authorized movement to the active log and the history log of
        its direction, then prune the history log.

        When `expected_last_id` is given, the ledger is re-read first and
        MovementConflict is raised if the last authorized movement is no
        longer the one the decision was based on.
        """
        if expected_last_id is not _UNCHECKED:
            current = last_authorized_movement(self.records_for(movement.vehicle_id))
            current_id = current.id if current else None
            if current_id != expected_last_id:
                raise MovementConflict(
                    f"{movement.vehicle_id}: last movement changed ({expected_last_id} → {current_id})"
                )

        ts = movement.timestamp or datetime.now(timezone.utc)
        when, hour = ts.isoformat(), ts.strftime("%H:%M")

        if movement.kind == MovementKind.ENTRY:
            active_row = {
                "id": movement.id,
                "patente": movement.vehicle_id,
                "chofer": "N/A",
                "motivo": movement.reason,
                "hora": hour,
                "fecha": when,
                "estado": "autorizado",
                "solicitud_diagnostico_id": movement.appointment_ref,
                **(details or {}),
            }
            history_row = {
                "id": movement.id,
                "patente": movement.vehicle_id,
                "estado_vehiculo": vehicle_status or "N/A",
                "autorizado": True,
                "motivo": movement.reason,
                "fecha_busqueda": when,
                "hora_busqueda": hour,
                "tiene_diagnostico": appointment is not None,
                "tipo_problema": appointment.problem_type if appointment else None,
                "fecha_cita": appointment.effective_date.isoformat()
                if appointment and appointment.effective_date else None,
                "horario_cita": appointment.time_slot if appointment else None,
                "es_para_hoy": for_today,
            }
        else:
            active_row = {
                "id": movement.id,
                "patente": movement.vehicle_id,
                "chofer": "N/A",
                "motivo": movement.reason,
                "hora": hour,
                "fecha": when,
                "tipo": "salida",
                **(details or {}),
            }
            history_row = {
                "id": movement.id,
                "patente": movement.vehicle_id,
                "estado_vehiculo": vehicle_status or "N/A",
                "motivo": movement.reason,
                "fecha_salida": when,
                "hora_salida": hour,
            }

        self.store.write(_ACTIVE[movement.kind].collection, active_row)
        self.store.write(_HISTORY[movement.kind].collection, history_row)
        self.prune(_HISTORY[movement.kind])
        logger.info(f"[LEDGER] {movement.kind.value.upper()} recorded for {movement.vehicle_id} (id={movement.id})")
        return movement

    def record_denied_attempt(self, vehicle_id: str, reason: str,
                              when: Optional[datetime] = None) -> MovementRecord:
        """Log a refused entry attempt. It never changes presence state."""
        ts = when or datetime.now(timezone.utc)
        record = MovementRecord(
            id=next_record_id(),
            vehicle_id=normalize_plate(vehicle_id),
            kind=MovementKind.ENTRY,
            timestamp=ts,
            reason=reason,
            source_log=ENTRY_ACTIVE.collection.table,
            authorized=False,
        )
        self.store.write(ENTRY_ACTIVE.collection, {
            "id": record.id,
            "patente": record.vehicle_id,
            "chofer": "N/A",
            "motivo": reason,
            "hora": ts.strftime("%H:%M"),
            "fecha": ts.isoformat(),
            "estado": "denegado",
        })
        logger.info(f"[LEDGER] Denied entry attempt logged for {record.vehicle_id}: {reason}")
        return record

    # ── history ─────────────────────────────────────────────────────────────
    def _sorted_rows(self, source: LogSource) -> list[dict]:
        rows = self.store.read(source.collection, merge=True)
        return sorted(
            rows,
            key=lambda r: parse_timestamp(r.get(source.timestamp_field)) or _OLDEST,
            reverse=True,
        )

    def prune(self, source: LogSource) -> int:
        """Drop the oldest rows beyond the cap. Returns how many were removed."""
        if not source.capped:
            return 0
        excess = self._sorted_rows(source)[self.history_cap:]
        for row in excess:
            self.store.delete(source.collection, row.get(source.collection.key))
        if excess:
            logger.debug(f"[LEDGER] Pruned {len(excess)} rows from {source.collection.table}")
        return len(excess)

    def history(self, kind: MovementKind, limit: int = 50) -> list[dict]:
        """Rows of the capped history log for one direction, newest first."""
        return self._sorted_rows(_HISTORY[kind])[:limit]
