"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from stream_notifier import __version__
from stream_notifier.api.queue import router as queue_router
from stream_notifier.config import get_settings
from stream_notifier.db.session import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate settings and create database tables on startup."""
    get_settings().validate()
    init_db()
    yield

app = FastAPI(
    title="Stream Notifier Queue API",
    description="Operator API for the notification delivery and retry queue",
    version=__version__,
    lifespan=lifespan,
)

# Register routers
app.include_router(queue_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
