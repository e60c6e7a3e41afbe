# fleetgate/services/dual_store.py
"""
DualStore — read/write façade over the remote Directory and the local cache.

Policy:
  - Remote first. Unreachable/Rejected remote calls fall back to the cache.
  - A remote read with zero rows is indeterminate: the cache is consulted too,
    and emptiness is only reported when both are empty.
  - merge=True returns the union of both (remote copy wins per key); used where
    the cache may hold records written while the remote was unusable.
  - Keys: client-side creation ids, except for server_key collections whose
    key is left to the Directory and only assigned on the local fallback.
  - Writes that reach the remote are mirrored into the cache (best effort).
  - The caller only sees a StoreError when both backends fail.
  - Read-your-writes: every successful write/update/delete made through this
    instance is overlaid on its later reads. Nothing is shared across instances.
"""

import threading
import time
from typing import Optional

from fleetgate.services.collections import Collection
from fleetgate.services.directory_client import RemoteDirectory
from fleetgate.services.local_cache import LocalCache, matches
from fleetgate.utils.exceptions import StoreError, StoreUnreachable, StoreRejected, RecordNotFound
from fleetgate.utils.logger import get_logger

logger = get_logger(__name__)

_id_lock = threading.Lock()
_last_id = 0


def next_record_id() -> int:
    """Creation-time-derived id (epoch ms), strictly increasing within the process."""
    global _last_id
    with _id_lock:
        _last_id = max(time.time_ns() // 1_000_000, _last_id + 1)
        return _last_id


class DualStore:
    def __init__(self, remote: RemoteDirectory, local: LocalCache):
        self.remote = remote
        self.local = local
        self._written: dict[str, dict[str, dict]] = {}
        self._deleted: dict[str, set[str]] = {}

    # ── helpers ──────────────────────────────────────────────────────────────
    def _log_fallback(self, op: str, collection: Collection, error: StoreError):
        if not self.remote.configured:
            logger.debug(f"[STORE] {op} {collection.table}: offline mode, using local cache")
        else:
            logger.warning(f"[STORE] {op} {collection.table}: remote {error.kind} ({error}) — using local cache")

    def _remember(self, collection: Collection, record: dict):
        key = str(record.get(collection.key))
        self._written.setdefault(collection.table, {})[key] = dict(record)
        self._deleted.get(collection.table, set()).discard(key)

    def _forget(self, collection: Collection, key):
        key = str(key)
        self._written.get(collection.table, {}).pop(key, None)
        self._deleted.setdefault(collection.table, set()).add(key)

    def _overlay(self, collection: Collection, rows: list[dict], filters: Optional[dict]) -> list[dict]:
        written = self._written.get(collection.table, {})
        deleted = self._deleted.get(collection.table, set())
        result, seen = [], set()
        for row in rows:
            key = str(row.get(collection.key))
            if key in deleted:
                continue
            seen.add(key)
            result.append(written.get(key, row))
        for key, record in written.items():
            if key not in seen and matches(record, filters):
                result.append(dict(record))
        return [r for r in result if matches(r, filters)]

    # ── reads ────────────────────────────────────────────────────────────────
    def read(self, collection: Collection, filters: dict = None, merge: bool = False) -> list[dict]:
        remote_rows, remote_error = None, None
        try:
            remote_rows = self.remote.list(collection, filters)
        except (StoreUnreachable, StoreRejected) as e:
            remote_error = e
            self._log_fallback("read", collection, e)

        if remote_rows and not merge:
            return self._overlay(collection, remote_rows, filters)

        try:
            local_rows = self.local.list(collection, filters)
        except StoreError as e:
            if remote_error is not None:
                logger.error(f"[STORE] read {collection.table}: remote and local cache both failed: {e}")
                raise
            logger.warning(f"[STORE] read {collection.table}: local cache failed ({e})")
            local_rows = []

        rows = list(remote_rows or [])
        seen = {str(r.get(collection.key)) for r in rows}
        rows.extend(r for r in local_rows if str(r.get(collection.key)) not in seen)
        return self._overlay(collection, rows, filters)

    def find_one(self, collection: Collection, key) -> Optional[dict]:
        rows = self.read(collection, filters={collection.key: key}, merge=True)
        return rows[0] if rows else None

    # ── writes ───────────────────────────────────────────────────────────────
    def write(self, collection: Collection, record: dict) -> dict:
        record = dict(record)
        if record.get(collection.key) is None and not collection.server_key:
            record[collection.key] = next_record_id()

        try:
            stored = self.remote.insert(collection, record)
        except (StoreUnreachable, StoreRejected) as e:
            self._log_fallback("write", collection, e)
            if record.get(collection.key) is None:
                record[collection.key] = next_record_id()
            stored = self.local.insert(collection, record)
        else:
            if stored.get(collection.key) is None:
                logger.warning(f"[STORE] write {collection.table}: Directory returned no key, not mirrored")
                return stored
            try:
                self.local.insert(collection, stored)
            except StoreError as e:
                logger.warning(f"[STORE] mirror {collection.table}:{stored[collection.key]} to cache failed: {e}")

        self._remember(collection, stored)
        logger.debug(f"[STORE] wrote {collection.table}:{stored.get(collection.key)}")
        return stored

    def update(self, collection: Collection, key, changes: dict) -> Optional[dict]:
        """Apply `changes` in both stores. Returns the updated record, or None if no store has it."""
        remote_result, remote_error = None, None
        try:
            remote_result = self.remote.update(collection, key, changes)
        except RecordNotFound:
            pass
        except (StoreUnreachable, StoreRejected) as e:
            remote_error = e
            self._log_fallback("update", collection, e)

        local_result = None
        try:
            local_result = self.local.update(collection, key, changes)
        except RecordNotFound:
            pass
        except StoreError as e:
            if remote_error is not None:
                raise
            logger.warning(f"[STORE] update {collection.table}:{key} in cache failed: {e}")

        result = remote_result or local_result
        if result is None:
            pending = self._written.get(collection.table, {}).get(str(key))
            if pending is None:
                logger.info(f"[STORE] update {collection.table}:{key} — not found")
                return None
            result = {**pending, **changes}
        self._remember(collection, result)
        return result

    def delete(self, collection: Collection, key) -> bool:
        """Delete from both stores. Returns False when neither had the record."""
        deleted, remote_error = False, None
        try:
            self.remote.delete(collection, key)
            deleted = True
        except RecordNotFound:
            pass
        except (StoreUnreachable, StoreRejected) as e:
            remote_error = e
            self._log_fallback("delete", collection, e)

        try:
            self.local.delete(collection, key)
            deleted = True
        except RecordNotFound:
            pass
        except StoreError as e:
            if remote_error is not None:
                raise
            logger.warning(f"[STORE] delete {collection.table}:{key} in cache failed: {e}")

        was_written = str(key) in self._written.get(collection.table, {})
        self._forget(collection, key)
        return deleted or was_written
