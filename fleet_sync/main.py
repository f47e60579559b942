from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import asyncio
import logging
import time
import uuid

from .config import settings
from .database import create_tables, SessionLocal
from .exceptions import FleetSyncError
from .utils.logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from .utils.rate_limiter import limiter

from .routers import availability, conflicts, sync_jobs, health

logger = logging.getLogger(__name__)
request_logger = get_logger("fleet_sync.requests")


def process_pending_sync_jobs(batch_size: int):
    """One worker cycle: process up to batch_size pending sync jobs"""
    from .services.sync_jobs import SyncJobProcessor

    worker_db = SessionLocal()
    try:
        return SyncJobProcessor(worker_db).process_batch(limit=batch_size)
    finally:
        worker_db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(level=settings.log_level, json_format=settings.log_json)

    logger.info("Starting fleet-sync...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"CORS Origins: {settings.cors_origins}")

    create_tables()
    logger.info("Database ready")

    # ==========================================
    # START BACKGROUND SYNC JOB WORKER
    # ==========================================
    worker_task = None
    worker_running = True
    worker_logger = logging.getLogger("fleet_sync.worker")

    async def run_sync_job_worker():
        """Background worker for queued sync jobs"""
        poll_interval = settings.worker_poll_interval
        batch_size = settings.worker_batch_size

        worker_logger.info(f"Sync job worker started (interval: {poll_interval}s, batch: {batch_size})")

        while worker_running:
            try:
                # Jobs hold the database for a while; keep them off the event loop
                success, failed = await asyncio.to_thread(process_pending_sync_jobs, batch_size)
                if success + failed > 0:
                    worker_logger.info(f"Worker: sync jobs {success} done / {failed} failed")
            except Exception as e:
                worker_logger.error(f"Worker error: {e}")

            # Wait before next poll
            await asyncio.sleep(poll_interval)

    if settings.sync_worker_enabled:
        worker_task = asyncio.create_task(run_sync_job_worker())
    else:
        logger.info("In-process sync job worker disabled")

    yield

    # Shutdown
    logger.info("Shutting down fleet-sync...")
    worker_running = False
    if worker_task:
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass
        logger.info("Sync job worker stopped")


# Create FastAPI app
app = FastAPI(
    title="Fleet Availability Sync API",
    description="Availability synchronization and conflict resolution for the rental fleet",
    version="1.0.0",
    lifespan=lifespan
)

# Rate limiter state
app.state.limiter = limiter


# ================================
# CORS MIDDLEWARE - MUST BE FIRST!
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# Request ID Middleware
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)
        start = time.time()
        try:
            response = await call_next(request)
            request_logger.api_request(
                request.method,
                request.url.path,
                response.status_code,
                round((time.time() - start) * 1000, 2),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()


# Add other middleware AFTER CORS
app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(FleetSyncError)
async def fleet_sync_error_handler(request: Request, exc: FleetSyncError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message} {exc.details}")
    content = {"detail": exc.message, "code": exc.code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


# Rate limit handler
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, try again later", "code": "rate_limited"}
    )


# Include routers
app.include_router(health.router)
app.include_router(availability.router)
app.include_router(conflicts.router)
app.include_router(sync_jobs.router)


@app.get("/")
async def root():
    return {
        "message": "Fleet Availability Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running"
    }
