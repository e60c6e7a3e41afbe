# fleetgate/routers/health.py
"""
System health check endpoint.
Returns status of backend + local cache + remote Directory reachability.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from fleetgate.database import get_db
from fleetgate.dependencies import remote_directory
from fleetgate.services import collections
from datetime import datetime, timezone

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Local cache connectivity
    - Directory reachability ("offline" when no Directory is configured)
    """
    result = {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "backend": "ok",
        "cache": "unknown",
        "directory": "unknown",
    }

    try:
        db.execute(text("SELECT 1"))
        result["cache"] = "ok"
    except Exception as e:
        result["cache"] = f"error: {str(e)}"
        result["status"] = "degraded"

    result["directory"] = remote_directory.ping(collections.VEHICLES)
    if result["directory"] not in ("ok", "offline"):
        result["status"] = "degraded"

    return result
