"""
FastAPI Server - Trello Backlog Sync

Receives Trello webhooks for a board and keeps the backlog proxy cards in
sync. Also exposes a manual rebuild endpoint.

Run with:
    python run_server.py

Or with uvicorn:
    uvicorn backlog_sync.server:app --host 0.0.0.0 --port 8001 --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backlog_sync.config import load_env_file
from backlog_sync.exceptions import BacklogSyncError
from backlog_sync.preflight import run_preflight_checks
from backlog_sync.routers import backlog_router, webhooks_router
from backlog_sync.shared import get_sync_config, reset_singletons

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Trello Backlog Sync",
    description="Mirrors incomplete checklist items into backlog proxy cards",
    version="1.0.0"
)

app.include_router(webhooks_router)
app.include_router(backlog_router)


@app.exception_handler(BacklogSyncError)
async def backlog_sync_error_handler(request: Request, exc: BacklogSyncError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health():
    return {"status": "ok"}


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    load_env_file()
    run_preflight_checks(fail_on_critical=True)

    config = get_sync_config()
    logging.getLogger("backlog_sync").setLevel(config.log_level())
    logger.info(
        f"Backlog Sync ready: backlog='{config.backlog_list_name}' "
        f"wip={config.wip_list_names} done={config.done_list_names}"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Close the Trello HTTP client."""
    await reset_singletons()
    logger.info("Backlog Sync stopped")
