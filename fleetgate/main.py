# fleetgate/main.py
"""
FastAPI application entry point.
Includes security middleware, error handlers, and all routers.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from fleetgate.routers import gate, registrations, health
from fleetgate.database import create_tables
from fleetgate.dependencies import notifier, remote_directory
from fleetgate.config import settings
from fleetgate.utils.exceptions import DuplicateIdentity, MalformedScanPayload, StoreError
from fleetgate.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="Fleet Gate API",
    description="Workshop gate entry/exit reconciliation and employee registration.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (gate tablets and the web dashboard call the API) ──────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    Self-registration and health stay open — applicants have no key.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/registrations", "/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(DuplicateIdentity)
async def duplicate_identity_handler(request: Request, exc: DuplicateIdentity):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(MalformedScanPayload)
async def malformed_scan_handler(request: Request, exc: MalformedScanPayload):
    logger.warning(f"Unreadable QR payload on {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Directory and local cache both failed on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable, try again"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(gate.router,          prefix="/api/v1", tags=["🚧 Gate"])
app.include_router(registrations.router, prefix="/api/v1", tags=["🧑‍🔧 Registrations"])
app.include_router(health.router,        prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Fleet Gate starting up...")
    create_tables()
    logger.info("✅ Local cache tables ready")
    if remote_directory.configured:
        logger.info(f"📡 Directory: {settings.DIRECTORY_URL}")
    else:
        logger.warning("📴 No Directory configured — running on the local cache only")
    logger.info(f"📧 Email notifications: {'on' if settings.ENABLE_EMAIL else 'off'}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Fleet Gate shutting down...")
    await notifier.drain()
    remote_directory.close()
