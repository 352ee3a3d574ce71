"""
AirTrack FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend import db
from backend.config import settings
from backend.middleware.rate_limit import import_rate_limiter
from backend.repos.document_repo import PostgresDocumentStore
from backend.routes import chat as chat_routes
from backend.routes import notifications as notification_routes
from backend.routes import records as record_routes
from backend.routes import ws as ws_routes
from engine.recordsync.transport import MemoryDocumentStore

logger = logging.getLogger(__name__)


# Background task for cleanup
async def cleanup_task():
    """
    Background task to drop old import rate limit entries.

    Runs every 60 seconds.
    """
    while True:
        removed = import_rate_limiter.cleanup_old_entries(max_age_hours=2)
        if removed:
            logger.info("main: cleaned up %d rate limit keys", removed)
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Open the document store (Postgres pool + LISTEN, or in-memory)
    - Start background cleanup task
    - Close the store on shutdown
    """
    # Startup
    if settings.uses_postgres:
        await db.init_pool()
        store = PostgresDocumentStore()
        await store.start()
        logger.info("main: postgres document store ready")
    else:
        store = MemoryDocumentStore()
        logger.info("main: in-memory document store ready")
    app.state.store = store

    cleanup_task_handle = asyncio.create_task(cleanup_task())

    yield

    # Shutdown
    cleanup_task_handle.cancel()
    try:
        await cleanup_task_handle
    except asyncio.CancelledError:
        logger.info("main: background cleanup task stopped")

    if isinstance(store, PostgresDocumentStore):
        await store.stop()
        await db.close_pool()
        logger.info("main: database pool closed")


app = FastAPI(
    title="AirTrack",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Register routes
app.include_router(record_routes.router)
app.include_router(chat_routes.router)
app.include_router(notification_routes.router)
app.include_router(ws_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok", "store": settings.STORE_BACKEND}
