# fleetgate/config.py
"""
Application configuration using Pydantic-Settings.
All settings can be overridden via environment variables or .env file.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # ── Local fallback cache ──────────────────────────────────────────────
    LOCAL_CACHE_URL: str = "sqlite:///./data/fleetgate_cache.db"

    # ── Remote Directory (PostgREST / Supabase REST) ──────────────────────
    DIRECTORY_URL: Optional[str] = None          # Unset = offline mode, cache only
    DIRECTORY_API_KEY: Optional[str] = None
    DIRECTORY_TIMEOUT_SECONDS: float = 5.0

    # ── Network ───────────────────────────────────────────────────────────
    BACKEND_IP: str = "0.0.0.0"
    BACKEND_PORT: int = 8080
    PUBLIC_BASE_URL: str = "http://localhost:5173"   # Used for /vehiculo/<plate> QR payloads

    # ── Security ──────────────────────────────────────────────────────────
    API_KEY: Optional[str] = None   # Set in .env to enable auth on API endpoints

    # ── Email (MailerSend) ────────────────────────────────────────────────
    ENABLE_EMAIL: bool = False
    MAILERSEND_URL: str = "https://api.mailersend.com/v1/email"
    MAILERSEND_API_KEY: Optional[str] = None
    MAILERSEND_FROM: Optional[str] = None
    NOTIFY_TIMEOUT_SECONDS: float = 10.0
    GATE_ALERT_EMAIL: Optional[str] = None       # Receives entry/exit alerts
    APPROVER_EMAIL: Optional[str] = None         # Receives new registration requests

    # ── Ledger ────────────────────────────────────────────────────────────
    HISTORY_LOG_CAP: int = 100      # Max rows kept per history log (newest win)

    # ── Logging ───────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None   # Defaults to <repo>/logs

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
