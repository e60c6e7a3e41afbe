"""
Local fallback cache table.
One row per Directory record written or mirrored locally. The record itself is
kept verbatim in `payload` so the cache holds the exact shape the remote
Directory would have stored.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from fleetgate.database import Base


class CacheRecord(Base):
    __tablename__ = "cache_records"
    __table_args__ = (
        UniqueConstraint("collection", "record_key", name="uq_cache_collection_key"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)   # insertion order
    collection = Column(String(100), nullable=False, index=True)  # Directory table name
    record_key = Column(String(100), nullable=False)             # value of the table's key field
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime)

    def __repr__(self):
        return f"<CacheRecord {self.collection}:{self.record_key}>"
