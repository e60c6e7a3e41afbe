# fleetgate/utils/exceptions.py
"""
Error taxonomy. Storage errors are recovered inside DualStore; only
DuplicateIdentity and MalformedScanPayload are meant to reach callers.
Gate denials are not exceptions (see services.state_resolver.Decision).
"""


class FleetGateError(Exception):
    """Base exception for the gate service."""
    pass


class StoreError(FleetGateError):
    """A backend (remote Directory or local cache) could not serve a call."""
    kind = "unknown"

    def __init__(self, message: str = "", collection: str = None):
        super().__init__(message or self.kind)
        self.collection = collection


class StoreUnreachable(StoreError):
    """Connectivity failure, timeout, 5xx, or backend not configured."""
    kind = "unreachable"


class StoreRejected(StoreError):
    """Backend answered but refused the call (permission, validation, missing table)."""
    kind = "rejected"


class RecordNotFound(StoreError):
    """Update/delete targeted a key that does not exist."""
    kind = "not_found"


class DuplicateIdentity(FleetGateError):
    """A registration was submitted for a national id that already exists."""

    def __init__(self, national_id: str):
        super().__init__(f"An employee with national id {national_id} already exists")
        self.national_id = national_id


class MalformedScanPayload(FleetGateError):
    """A scanned QR payload did not yield a vehicle identifier."""
    pass


class MovementConflict(FleetGateError):
    """The ledger changed between the authorization and the write."""
    pass
