# tests/conftest.py
"""Shared fixtures: in-memory local cache and a fake PostgREST Directory."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetgate.database import create_tables
from fleetgate.services.directory_client import RemoteDirectory
from fleetgate.services.dual_store import DualStore
from fleetgate.services.local_cache import LocalCache


class FakeDirectory:
    """
    In-memory PostgREST stand-in for httpx.MockTransport.
    Set `down` to answer 503 to everything, add tables to `rejected` to answer 403.
    Tables in `serial` get their key generated on POST when the client sends none.
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.serial = {"empleado": "id_empleado", "usuario": "id_usuario"}
        self.down = False
        self.rejected: set[str] = set()
        self.requests: list[httpx.Request] = []

    def seed(self, table: str, *rows: dict):
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)

    @staticmethod
    def _filters(request: httpx.Request) -> dict:
        return {k: v[3:] for k, v in request.url.params.items() if v.startswith("eq.")}

    @staticmethod
    def _match(row: dict, filters: dict) -> bool:
        return all(str(row.get(k)) == v for k, v in filters.items())

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        if self.down:
            return httpx.Response(503, text="service unavailable")
        if table in self.rejected:
            return httpx.Response(403, json={"message": "permission denied"})

        rows = self.tables.setdefault(table, [])
        filters = self._filters(request)
        hits = [r for r in rows if self._match(r, filters)]

        if request.method == "GET":
            if "limit" in request.url.params:
                hits = hits[:int(request.url.params["limit"])]
            return httpx.Response(200, json=hits)
        if request.method == "POST":
            record = json.loads(request.content)
            key = self.serial.get(table)
            if key and record.get(key) is None:
                record[key] = max((r.get(key) or 0 for r in rows), default=0) + 1
            rows.append(record)
            return httpx.Response(201, json=[record])
        if request.method == "PATCH":
            changes = json.loads(request.content)
            for row in hits:
                row.update(changes)
            return httpx.Response(200, json=hits)
        if request.method == "DELETE":
            self.tables[table] = [r for r in rows if not self._match(r, filters)]
            return httpx.Response(200, json=hits)
        return httpx.Response(405)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def remote(directory):
    client = RemoteDirectory(
        base_url="http://directory.test",
        api_key="test-key",
        transport=httpx.MockTransport(directory),
    )
    yield client
    client.close()


@pytest.fixture
def store(remote, db):
    """DualStore against the fake Directory."""
    return DualStore(remote, LocalCache(db))


@pytest.fixture
def offline_store(db):
    """DualStore with no Directory configured (local cache only)."""
    return DualStore(RemoteDirectory(base_url="", api_key=""), LocalCache(db))
