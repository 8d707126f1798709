"""FastAPI application serving the monitor's state.

The poll loop runs inside the application's lifespan so one process owns
both the caches and the HTTP surface reading them.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import AUTOSTART_MONITOR
from .logging_config import get_logger, setup_logging
from .monitor import get_monitor
from .routes import cache_router, logs_router, processes_router, sessions_router

logger = get_logger(__name__, namespace='api')


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the poll loop on startup and stop it on shutdown."""
    monitor = get_monitor()
    if AUTOSTART_MONITOR:
        monitor.start()
    try:
        yield
    finally:
        await monitor.stop()


def create_app() -> FastAPI:
    application = FastAPI(title="aimon", lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    application.include_router(processes_router)
    application.include_router(sessions_router)
    application.include_router(cache_router)
    application.include_router(logs_router)

    @application.get("/api/health")
    async def health():
        monitor = get_monitor()
        return {
            'status': 'ok',
            'monitorRunning': monitor.running,
            'pollCount': monitor.poll_count,
            'lastPollAt': monitor.last_poll_at.isoformat() if monitor.last_poll_at else None,
        }

    return application


setup_logging()
app = create_app()
