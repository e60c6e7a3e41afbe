# fleetgate/services/local_cache.py
"""
Local durable fallback cache, backed by the `cache_records` table.
Same contract as RemoteDirectory so DualStore can use either interchangeably.
Records keep their Directory shape verbatim; listing preserves insertion order.
"""

from datetime import datetime, timezone
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fleetgate.models.cache_record import CacheRecord
from fleetgate.services.collections import Collection
from fleetgate.utils.exceptions import StoreUnreachable, StoreRejected, RecordNotFound


def _same_value(a, b) -> bool:
    return a == b or (a is not None and b is not None and str(a) == str(b))


def matches(record: dict, filters: dict = None) -> bool:
    """Equality match on every filter field (int/str tolerant)."""
    return all(_same_value(record.get(field), value) for field, value in (filters or {}).items())


class LocalCache:
    def __init__(self, db: Session):
        self.db = db

    def _row(self, collection: Collection, key):
        return (
            self.db.query(CacheRecord)
            .filter(CacheRecord.collection == collection.table, CacheRecord.record_key == str(key))
            .first()
        )

    def _commit(self, collection: Collection):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise StoreRejected(f"cache {collection.table}: {e.orig}", collection.table) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnreachable(f"cache {collection.table}: {e}", collection.table) from e

    def list(self, collection: Collection, filters: dict = None) -> list[dict]:
        try:
            rows = (
                self.db.query(CacheRecord)
                .filter(CacheRecord.collection == collection.table)
                .order_by(CacheRecord.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreUnreachable(f"cache {collection.table}: {e}", collection.table) from e
        records = [dict(row.payload) for row in rows]
        return [r for r in records if matches(r, filters)]

    def insert(self, collection: Collection, record: dict) -> dict:
        key = record.get(collection.key)
        if key is None:
            raise StoreRejected(f"cache {collection.table}: record has no {collection.key}", collection.table)
        self.db.add(CacheRecord(
            collection=collection.table,
            record_key=str(key),
            payload=dict(record),
            created_at=datetime.now(timezone.utc),
        ))
        self._commit(collection)
        return dict(record)

    def update(self, collection: Collection, key, changes: dict) -> dict:
        try:
            row = self._row(collection, key)
        except SQLAlchemyError as e:
            raise StoreUnreachable(f"cache {collection.table}: {e}", collection.table) from e
        if row is None:
            raise RecordNotFound(f"{collection.table}:{key}", collection.table)
        payload = dict(row.payload)
        payload.update(changes)
        row.payload = payload          # reassign so the JSON column is flagged dirty
        row.updated_at = datetime.now(timezone.utc)
        self._commit(collection)
        return payload

    def delete(self, collection: Collection, key) -> None:
        try:
            row = self._row(collection, key)
        except SQLAlchemyError as e:
            raise StoreUnreachable(f"cache {collection.table}: {e}", collection.table) from e
        if row is None:
            raise RecordNotFound(f"{collection.table}:{key}", collection.table)
        self.db.delete(row)
        self._commit(collection)
