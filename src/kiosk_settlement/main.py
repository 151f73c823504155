# src/kiosk_settlement/main.py
"""Main entry point for the kiosk settlement API."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from kiosk_settlement.api.v1 import (
    sessions_router,
    settlements_router,
    system_router,
    wallets_router,
)
from kiosk_settlement.core.log import configure_logging
from kiosk_settlement.core.settings import settings
from kiosk_settlement.db.session import create_tables
from kiosk_settlement.services.bridge import get_bridge_client
from kiosk_settlement.services.clearnode import get_accounting_client
from kiosk_settlement.services.retry_worker import RetrySweepWorker
from kiosk_settlement.services.settlement import build_orchestrator

configure_logging()

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Cash-to-chain settlement with PIN wallet recovery",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(settlements_router, prefix="/api/v1")
app.include_router(wallets_router, prefix="/api/v1")
app.include_router(sessions_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    if settings.retry_sweep_enabled:
        worker = RetrySweepWorker(build_orchestrator())
        await worker.start()
        app.state.retry_worker = worker
    else:
        app.state.retry_worker = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: RetrySweepWorker | None = getattr(app.state, "retry_worker", None)
    if worker:
        await worker.stop()
    await get_bridge_client().close()
    await get_accounting_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("kiosk_settlement.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
