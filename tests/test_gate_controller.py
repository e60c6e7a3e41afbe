# tests/test_gate_controller.py
"""Unit tests for gate entry/exit orchestration."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import random
import time

import httpx
import pytest
from datetime import date, timedelta
from unittest.mock import MagicMock, patch
from fleetgate.schemas.movement import MovementKind
from fleetgate.services import collections
from fleetgate.services.directory_client import RemoteDirectory
from fleetgate.services.dual_store import DualStore
from fleetgate.services.gate_controller import GateController, PlateGuard
from fleetgate.services.local_cache import LocalCache
from fleetgate.utils.exceptions import MalformedScanPayload, MovementConflict

TODAY = date(2026, 10, 19)


def add_vehicle(store, plate="ABC123", id=1, branch_id=None):
    store.write(collections.VEHICLES, {
        "id_vehiculo": id, "patente_vehiculo": plate, "estado_vehiculo": "operativo",
        "sucursal_id": branch_id,
    })


def add_appointment(store, plate, status="confirmada", when=TODAY, work_order_id=None, id=50):
    store.write(collections.APPOINTMENTS, {
        "id_solicitud_diagnostico": id,
        "patente_vehiculo": plate,
        "tipo_problema": "Motor",
        "fecha_solicitada": when.isoformat(),
        "fecha_confirmada": when.isoformat() if status == "confirmada" else None,
        "bloque_horario": "10:00-11:00",
        "estado_solicitud": status,
        "orden_trabajo_id": work_order_id,
    })


class TestEntry:
    @pytest.mark.asyncio
    async def test_known_vehicle_enters_once(self, offline_store):
        add_vehicle(offline_store)
        gate = GateController(offline_store)

        first = await gate.register_entry("abc123", today=TODAY)
        second = await gate.register_entry("ABC123", today=TODAY)

        assert first.allowed is True
        assert first.movement.reason == "Acceso autorizado"
        assert second.allowed is False
        assert second.reason == "already inside"
        assert gate.vehicle_state("ABC123").is_inside is True

    @pytest.mark.asyncio
    async def test_unknown_vehicle_is_denied_and_logged(self, offline_store):
        gate = GateController(offline_store)

        result = await gate.register_entry("ZZ0000", today=TODAY)

        assert result.allowed is False
        assert result.reason == "vehicle not registered"
        rows = offline_store.read(collections.ENTRY_REGISTRATIONS)
        assert rows[0]["estado"] == "denegado"
        assert gate.vehicle_state("ZZ0000").is_inside is False

    @pytest.mark.asyncio
    async def test_unconfirmed_appointment_is_explained(self, offline_store):
        add_appointment(offline_store, "PEND01", status="pendiente_confirmacion")
        result = await GateController(offline_store).register_entry("PEND01", today=TODAY)
        assert result.reason == "appointment not confirmed"

    @pytest.mark.asyncio
    async def test_confirmed_appointment_three_days_ahead_admits_unregistered_vehicle(self, offline_store):
        offline_store.write(collections.WORK_ORDERS, {"id_orden_trabajo": 77, "estado_ot": "pendiente"})
        add_appointment(offline_store, "XY12AB", when=TODAY + timedelta(days=3), work_order_id=77)

        result = await GateController(offline_store).register_entry("XY12AB", today=TODAY)

        assert result.allowed is True
        assert result.referenced_only is True
        assert result.for_today is False
        assert result.appointment_id == 50
        assert result.movement.reason == "Diagnóstico - Motor"
        assert offline_store.find_one(collections.WORK_ORDERS, 77)["estado_ot"] == "en curso"
        history = offline_store.read(collections.ENTRY_HISTORY)
        assert history[0]["tiene_diagnostico"] is True
        assert history[0]["es_para_hoy"] is False

    @pytest.mark.asyncio
    async def test_work_order_found_by_appointment(self, offline_store):
        offline_store.write(collections.WORK_ORDERS, {
            "id_orden_trabajo": 78, "solicitud_diagnostico_id": 50, "estado_ot": "pendiente",
        })
        add_appointment(offline_store, "XY12AB")

        result = await GateController(offline_store).register_entry("XY12AB", today=TODAY)

        assert result.for_today is True
        assert offline_store.find_one(collections.WORK_ORDERS, 78)["estado_ot"] == "en curso"

    @pytest.mark.asyncio
    async def test_entry_details_are_stored(self, offline_store):
        add_vehicle(offline_store)
        await GateController(offline_store).register_entry(
            "ABC123", observations="Rayón puerta", fuel_level="1/2", today=TODAY,
        )
        row = offline_store.read(collections.ENTRY_REGISTRATIONS)[0]
        assert row["observaciones"] == "Rayón puerta"
        assert row["nivel_combustible"] == "1/2"
        assert row["metodo_registro"] == "manual"
        assert "danos_visibles" not in row


class TestExit:
    @pytest.mark.asyncio
    async def test_exit_without_entry(self, offline_store):
        result = await GateController(offline_store).register_exit("ABC123")
        assert result.allowed is False
        assert result.reason == "no prior entry"

    @pytest.mark.asyncio
    async def test_exit_after_entry(self, offline_store):
        add_vehicle(offline_store)
        gate = GateController(offline_store)
        await gate.register_entry("ABC123", today=TODAY)

        first = await gate.register_exit("ABC123")
        second = await gate.register_exit("ABC123")

        assert first.allowed is True
        assert first.movement.reason == "Salida autorizada"
        assert second.reason == "already exited"
        assert gate.vehicle_state("ABC123").is_inside is False

    @pytest.mark.asyncio
    async def test_exit_for_vehicle_admitted_on_appointment(self, offline_store):
        add_appointment(offline_store, "XY12AB")
        gate = GateController(offline_store)
        await gate.register_entry("XY12AB", today=TODAY)

        result = await gate.register_exit("XY12AB")

        assert result.allowed is True
        assert result.referenced_only is True


class TestAlternation:
    @pytest.mark.asyncio
    async def test_accepted_movements_alternate(self, offline_store):
        add_vehicle(offline_store)
        gate = GateController(offline_store)
        rng = random.Random(7)

        accepted = []
        for _ in range(30):
            if rng.random() < 0.5:
                result = await gate.register_entry("ABC123", today=TODAY)
            else:
                result = await gate.register_exit("ABC123")
            if result.allowed:
                accepted.append(result.kind)

        assert accepted, "sequence should accept at least one movement"
        assert accepted[0] == MovementKind.ENTRY
        for previous, current in zip(accepted, accepted[1:]):
            assert previous != current
        expected_inside = accepted[-1] == MovementKind.ENTRY
        assert gate.vehicle_state("ABC123").is_inside is expected_inside


class TestScan:
    @pytest.mark.asyncio
    async def test_url_scan_registers_entry(self, offline_store):
        add_vehicle(offline_store)
        gate = GateController(offline_store)

        result = await gate.handle_scan("http://localhost:5173/vehiculo/abc123", MovementKind.ENTRY, today=TODAY)

        assert result.allowed is True
        assert result.movement.reason == "Acceso autorizado (QR)"
        assert offline_store.read(collections.ENTRY_REGISTRATIONS)[0]["metodo_registro"] == "QR"

    @pytest.mark.asyncio
    async def test_json_scan_registers_exit(self, offline_store):
        add_vehicle(offline_store)
        gate = GateController(offline_store)
        await gate.register_entry("ABC123", today=TODAY)

        result = await gate.handle_scan('{"patente": "ABC123"}', MovementKind.EXIT)

        assert result.allowed is True
        assert result.movement.reason == "Salida registrada por QR"

    @pytest.mark.asyncio
    async def test_malformed_scan_raises(self, offline_store):
        with pytest.raises(MalformedScanPayload):
            await GateController(offline_store).handle_scan('{"tipo": "vehiculo"}', MovementKind.ENTRY)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_plate_in_flight_is_denied(self, offline_store):
        add_vehicle(offline_store)
        guard = PlateGuard()
        gate = GateController(offline_store, guard=guard)
        assert guard.claim("ABC123") is True

        result = await gate.register_entry("abc123", today=TODAY)

        assert result.allowed is False
        assert result.reason == "operation in progress"
        assert offline_store.read(collections.ENTRY_REGISTRATIONS) == []

    @pytest.mark.asyncio
    async def test_guard_is_released_after_each_call(self, offline_store):
        add_vehicle(offline_store)
        guard = PlateGuard()
        gate = GateController(offline_store, guard=guard)

        await gate.register_entry("ABC123", today=TODAY)

        assert guard.claim("ABC123") is True

    @pytest.mark.asyncio
    async def test_ledger_change_during_write_is_denied(self, offline_store):
        add_vehicle(offline_store)
        gate = GateController(offline_store)

        with patch.object(gate.ledger, "record_movement", side_effect=MovementConflict("moved")):
            result = await gate.register_entry("ABC123", today=TODAY)

        assert result.allowed is False
        assert result.reason == "state changed"

    @pytest.mark.asyncio
    async def test_slow_directory_does_not_stall_the_event_loop(self, directory, db):
        def slow_directory(request):
            time.sleep(0.1)
            return directory(request)

        remote = RemoteDirectory("http://directory.test", "k", transport=httpx.MockTransport(slow_directory))
        directory.seed("vehiculo", {"id_vehiculo": 1, "patente_vehiculo": "ABC123", "estado_vehiculo": "operativo"})
        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        task = asyncio.create_task(ticker())
        try:
            result = await GateController(DualStore(remote, LocalCache(db))).register_entry("ABC123", today=TODAY)
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            remote.close()

        assert result.allowed is True
        assert ticks >= 10


class TestNotifications:
    @pytest.mark.asyncio
    async def test_entry_dispatches_gate_alert(self, offline_store):
        add_vehicle(offline_store, branch_id=3)
        offline_store.write(collections.BRANCHES, {"id_sucursal": 3, "nombre_sucursal": "Santiago Centro"})
        notifier = MagicMock()

        with patch("fleetgate.services.gate_controller.settings") as mock_settings:
            mock_settings.GATE_ALERT_EMAIL = "porteria@example.com"
            await GateController(offline_store, notifier=notifier).register_entry("ABC123", today=TODAY)

        notifier.dispatch.assert_called_once()
        to, subject, body = notifier.dispatch.call_args[0]
        assert to == "porteria@example.com"
        assert "ABC123" in subject
        assert "Santiago Centro" in body

    @pytest.mark.asyncio
    async def test_denial_sends_nothing(self, offline_store):
        notifier = MagicMock()
        with patch("fleetgate.services.gate_controller.settings") as mock_settings:
            mock_settings.GATE_ALERT_EMAIL = "porteria@example.com"
            await GateController(offline_store, notifier=notifier).register_exit("ABC123")
        notifier.dispatch.assert_not_called()
