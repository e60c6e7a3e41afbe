# tests/test_qr_codec.py
"""Unit tests for QR payload decoding."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fleetgate.services import qr_codec
from fleetgate.utils.exceptions import MalformedScanPayload


class TestDecode:
    @pytest.mark.parametrize("payload", [
        '{"patente": "ABC123", "tipo": "vehiculo"}',
        "https://apt.example.cl/vehiculo/ABC123",
        "ABC123",
    ])
    def test_all_shapes_yield_the_same_plate(self, payload):
        assert qr_codec.decode(payload) == "ABC123"

    def test_plate_is_normalized(self):
        assert qr_codec.decode("  abc123 \n") == "ABC123"
        assert qr_codec.decode('{"patente": " abc123 "}') == "ABC123"

    def test_alternate_json_keys(self):
        assert qr_codec.decode('{"patente_vehiculo": "xy12ab"}') == "XY12AB"
        assert qr_codec.decode('{"plate": "XY12AB"}') == "XY12AB"

    def test_dict_and_bytes_payloads(self):
        assert qr_codec.decode({"patente": "abc123"}) == "ABC123"
        assert qr_codec.decode(b"http://localhost:5173/vehiculo/abc123") == "ABC123"

    def test_url_is_percent_decoded_and_query_dropped(self):
        assert qr_codec.decode("https://x.cl/vehiculo/ab%2Dc12?src=qr#top") == "AB-C12"
        assert qr_codec.decode("https://x.cl/app/vehiculo/abc123/") == "ABC123"

    @pytest.mark.parametrize("payload", [
        "",
        "   ",
        '{"tipo": "vehiculo"}',
        '{"patente": ""}',
        "https://x.cl/vehiculo/",
        {},
        '["ABC123"]',
        '[{"patente": "ABC123"}]',
    ])
    def test_malformed_payloads_raise(self, payload):
        with pytest.raises(MalformedScanPayload):
            qr_codec.decode(payload)

    def test_unsupported_type_raises(self):
        with pytest.raises(MalformedScanPayload):
            qr_codec.decode(12345)


class TestVehicleUrl:
    def test_builds_vehicle_path(self):
        assert qr_codec.vehicle_url("http://localhost:5173/", " abc123") == \
            "http://localhost:5173/vehiculo/ABC123"

    def test_encodes_unsafe_characters(self):
        url = qr_codec.vehicle_url("https://apt.example.cl", "AB C/1")
        assert url == "https://apt.example.cl/vehiculo/AB%20C%2F1"

    def test_scanning_the_url_returns_the_plate(self):
        assert qr_codec.decode(qr_codec.vehicle_url("https://apt.example.cl", "hj-kl 42")) == "HJ-KL 42"
