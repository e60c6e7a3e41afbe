# tests/test_movement_ledger.py
"""Unit tests for the merged movement ledger."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime, timedelta, timezone
from fleetgate.schemas.movement import MovementKind, MovementRecord
from fleetgate.services import collections
from fleetgate.services.movement_ledger import (
    ENTRY_HISTORY, MovementLedger, parse_timestamp,
)
from fleetgate.services.state_resolver import resolve
from fleetgate.utils.exceptions import MovementConflict

T0 = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def make_movement(kind, minutes, id, plate="ABC123"):
    return MovementRecord(
        id=id,
        vehicle_id=plate,
        kind=kind,
        timestamp=T0 + timedelta(minutes=minutes),
        reason="test",
        source_log="test",
    )


class TestParseTimestamp:
    def test_zulu_and_offsets(self):
        assert parse_timestamp("2026-10-19T08:00:00Z") == T0
        assert parse_timestamp("2026-10-19T05:00:00-03:00") == T0

    def test_naive_is_utc(self):
        assert parse_timestamp("2026-10-19T08:00:00") == T0

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None


class TestRecordsFor:
    def test_merges_all_logs_newest_first(self, offline_store):
        offline_store.write(collections.ENTRY_REGISTRATIONS,
                            {"id": 1, "patente": "abc123", "fecha": "2026-10-19T08:00:00Z", "estado": "autorizado"})
        offline_store.write(collections.EXIT_REGISTRATIONS,
                            {"id": 2, "patente": "ABC123", "fecha": "2026-10-19T09:00:00Z"})
        offline_store.write(collections.ENTRY_HISTORY,
                            {"id": 3, "patente": "ABC123", "fecha_busqueda": "2026-10-19T10:00:00Z",
                             "autorizado": True})
        offline_store.write(collections.EXIT_HISTORY,
                            {"id": 4, "patente": "ABC123", "fecha_salida": "2026-10-19T11:00:00Z"})
        offline_store.write(collections.ENTRY_REGISTRATIONS,
                            {"id": 5, "patente": "OTHER1", "fecha": "2026-10-19T12:00:00Z", "estado": "autorizado"})

        records = MovementLedger(offline_store).records_for(" Abc123 ")

        assert [r.id for r in records] == [4, 3, 2, 1]
        assert [r.kind for r in records] == [
            MovementKind.EXIT, MovementKind.ENTRY, MovementKind.EXIT, MovementKind.ENTRY,
        ]
        assert records[-1].source_log == "registros_ingreso"

    def test_unparsable_timestamp_sorts_oldest(self, offline_store):
        offline_store.write(collections.ENTRY_REGISTRATIONS,
                            {"id": 1, "patente": "ABC123", "fecha": "not a date", "estado": "autorizado"})
        offline_store.write(collections.EXIT_REGISTRATIONS,
                            {"id": 2, "patente": "ABC123", "fecha": "2020-01-01T00:00:00Z"})

        records = MovementLedger(offline_store).records_for("ABC123")

        assert [r.id for r in records] == [2, 1]
        assert records[1].timestamp is None

    def test_denied_rows_are_unauthorized(self, offline_store):
        offline_store.write(collections.ENTRY_REGISTRATIONS,
                            {"id": 1, "patente": "ABC123", "fecha": "2026-10-19T08:00:00Z", "estado": "denegado"})
        records = MovementLedger(offline_store).records_for("ABC123")
        assert records[0].authorized is False


class TestRecordMovement:
    def test_writes_active_and_history_once(self, offline_store):
        ledger = MovementLedger(offline_store)
        ledger.record_movement(make_movement(MovementKind.ENTRY, 0, id=10))

        assert len(offline_store.read(collections.ENTRY_REGISTRATIONS)) == 1
        assert len(offline_store.read(collections.ENTRY_HISTORY)) == 1
        records = ledger.records_for("ABC123")
        assert len(records) == 1
        assert records[0].id == 10
        assert records[0].timestamp == T0

    def test_exit_goes_to_exit_logs(self, offline_store):
        ledger = MovementLedger(offline_store)
        ledger.record_movement(make_movement(MovementKind.EXIT, 0, id=11))

        assert offline_store.read(collections.ENTRY_REGISTRATIONS) == []
        history = offline_store.read(collections.EXIT_HISTORY)
        assert history[0]["fecha_salida"] == T0.isoformat()

    def test_detects_concurrent_change(self, offline_store):
        ledger = MovementLedger(offline_store)
        ledger.record_movement(make_movement(MovementKind.ENTRY, 0, id=20))

        with pytest.raises(MovementConflict):
            ledger.record_movement(make_movement(MovementKind.ENTRY, 1, id=21), expected_last_id=None)

        ledger.record_movement(make_movement(MovementKind.EXIT, 2, id=22), expected_last_id=20)
        assert ledger.records_for("ABC123")[0].id == 22

    def test_denied_attempt_leaves_state_unchanged(self, offline_store):
        ledger = MovementLedger(offline_store)
        ledger.record_denied_attempt("abc123", "vehicle not registered")

        records = ledger.records_for("ABC123")
        assert len(records) == 1
        assert records[0].authorized is False
        assert resolve("ABC123", records).is_inside is False
        assert offline_store.read(collections.ENTRY_HISTORY) == []


class TestHistoryCap:
    def test_keeps_newest_hundred(self, offline_store):
        ledger = MovementLedger(offline_store, history_cap=100)
        for i in range(105):
            ledger.record_movement(make_movement(MovementKind.ENTRY, i, id=1000 + i))

        history = ledger.history(MovementKind.ENTRY, limit=500)
        assert len(history) == 100
        assert history[0]["id"] == 1104
        assert history[-1]["id"] == 1005
        # active log is not capped
        assert len(offline_store.read(collections.ENTRY_REGISTRATIONS)) == 105

    def test_prune_removes_oldest_by_timestamp(self, offline_store):
        ledger = MovementLedger(offline_store, history_cap=2)
        for minutes, id in ((30, 1), (10, 2), (20, 3)):
            offline_store.write(collections.ENTRY_HISTORY, {
                "id": id, "patente": "ABC123", "autorizado": True,
                "fecha_busqueda": (T0 + timedelta(minutes=minutes)).isoformat(),
            })

        assert ledger.prune(ENTRY_HISTORY) == 1
        assert sorted(r["id"] for r in offline_store.read(collections.ENTRY_HISTORY)) == [1, 3]
