"""
Paws & Speed API entrypoint (FastAPI).

This module wires together:
- App startup/shutdown (lifespan): preload JSON state + start the periodic backup task
- Global middleware: request logging + CORS
- Router registration: live state, sync sessions, export/import, health
"""

# -------------------- Standard library imports --------------------
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from time import time

# -------------------- Third-party imports --------------------
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# -------------------- Environment configuration --------------------
# Load `.env` before settings are read by the local modules below.
load_dotenv()

# -------------------- Local application imports --------------------
from pawsspeed.api import live as live_module  # noqa: E402
from pawsspeed.api.export import router as export_router  # noqa: E402
from pawsspeed.api.health import router as health_router  # noqa: E402
from pawsspeed.api.live import router as live_router  # noqa: E402
from pawsspeed.api.sessions import router as sessions_router  # noqa: E402
from pawsspeed.config import settings  # noqa: E402
from pawsspeed.storage import json_store  # noqa: E402

# -------------------- Logging --------------------
# Log to stdout (for containers/terminal) and also to a local file (useful on event day).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout), logging.FileHandler(settings.log_file)],
)

logger = logging.getLogger(__name__)

# Reference to the backup task so we can cancel it cleanly on shutdown.
backup_task: asyncio.Task | None = None


async def run_backup_once(output_dir: Path) -> Path:
    """Write one full-state backup and apply retention."""
    async with live_module.state_lock:
        state = live_module.get_store().get_state()
    path = json_store.write_backup_file(output_dir, state)
    json_store.prune_backups(output_dir, settings.backup_retention_files)
    return path


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events for the FastAPI application."""

    # -------------------- Startup --------------------
    logger.info("🚀 Paws & Speed API starting up (JSON storage)...")

    # Best-effort state preload (restarts pick up where the event left off).
    try:
        await live_module.preload_state()
    except Exception as exc:
        logger.warning("State preload skipped: %s", exc)

    async def _backup_loop():
        # Periodically snapshot the full state to JSON files for disaster recovery.
        output_dir = Path(settings.backup_dir)
        while True:
            try:
                await asyncio.sleep(max(settings.backup_interval_min, 1) * 60)
                path = await run_backup_once(output_dir)
                logger.info("Periodic backup saved to %s", path)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Periodic backup failed: %s", exc, exc_info=True)

    global backup_task
    if settings.backup_interval_min > 0:
        backup_task = asyncio.create_task(_backup_loop())
    else:
        backup_task = None

    yield

    # -------------------- Shutdown --------------------
    logger.info("🛑 Paws & Speed API shutting down...")
    if live_module.sync_client is not None:
        live_module.sync_client.leave_session()
    if backup_task:
        backup_task.cancel()
        try:
            await backup_task
        except asyncio.CancelledError:
            pass


# -------------------- FastAPI app --------------------
app = FastAPI(
    title="Paws & Speed Scoring API",
    lifespan=lifespan,
)

# -------------------- CORS --------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_origin_regex=settings.allowed_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    # Lightweight access log with timing; errors include stack traces for debugging.
    start_time = time()

    logger.info(
        "%s %s - Client: %s",
        request.method,
        request.url.path,
        request.client.host if request.client else "unknown",
    )

    try:
        response = await call_next(request)
        process_time = time() - start_time
        logger.info(
            "%s %s - Status: %s - Duration: %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            process_time,
        )
        return response
    except Exception as exc:
        process_time = time() - start_time
        logger.error(
            "%s %s - Error: %s - Duration: %.3fs",
            request.method,
            request.url.path,
            str(exc),
            process_time,
            exc_info=True,
        )
        raise


@app.get("/health")
async def health():
    # Minimal liveness probe used by local tooling / reverse proxies.
    return {"status": "ok", "storage": "json"}


# -------------------- Router registration --------------------
app.include_router(live_router, prefix="/api")
app.include_router(sessions_router, prefix="/api")
app.include_router(export_router, prefix="/api")
app.include_router(health_router, prefix="/api")
