# fleetgate/dependencies.py
"""
FastAPI dependency providers.
The Directory client, notifier and plate guard live for the whole process;
a DualStore (and its read-your-writes view) lives for one request.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from fleetgate.database import SessionLocal, get_db
from fleetgate.services.directory_client import RemoteDirectory
from fleetgate.services.dual_store import DualStore
from fleetgate.services.gate_controller import GateController, PlateGuard
from fleetgate.services.local_cache import LocalCache
from fleetgate.services.notifier import Notifier
from fleetgate.services.registration_workflow import RegistrationWorkflow

remote_directory = RemoteDirectory()
notifier = Notifier(session_factory=SessionLocal)
plate_guard = PlateGuard()


def get_store(db: Session = Depends(get_db)) -> DualStore:
    return DualStore(remote_directory, LocalCache(db))


def get_gate_controller(store: DualStore = Depends(get_store)) -> GateController:
    return GateController(store, notifier=notifier, guard=plate_guard)


def get_registration_workflow(store: DualStore = Depends(get_store)) -> RegistrationWorkflow:
    return RegistrationWorkflow(store, notifier=notifier)
