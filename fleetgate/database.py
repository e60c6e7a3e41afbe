# fleetgate/database.py
"""
Local fallback cache: connection, session management, and table creation.
Uses SQLAlchemy (SQLite by default, any SQLAlchemy URL works). All models are
imported in create_tables() so every table is created in one call.
"""

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from fleetgate.config import settings


def build_engine(url: str):
    """Engine for the cache. SQLite needs cross-thread access under FastAPI."""
    if url.startswith("sqlite"):
        path = url.split("///", 1)[-1]
        if path and path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    return create_engine(
        url,
        pool_pre_ping=True,          # Auto-reconnect if DB connection drops
        pool_size=10,
        max_overflow=20,
        echo=False,
    )


engine = build_engine(settings.LOCAL_CACHE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency — yields a cache session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Creates all cache tables. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    from fleetgate.models.cache_record import CacheRecord          # noqa
    from fleetgate.models.notification_log import NotificationLog  # noqa

    Base.metadata.create_all(bind=bind or engine)
