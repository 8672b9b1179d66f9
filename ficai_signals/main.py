import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ficai_signals.app_logging import setup_logging
from ficai_signals.config import get_settings
from ficai_signals.database import init_db
from ficai_signals.errors import install_error_handlers
from ficai_signals.routers import auth_router, signals_router, tags_router

VERSION = "0.1.0"

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    settings = get_settings()
    setup_logging(settings)
    # Startup: Initialize database
    init_db()
    log.info("ficai signals %s started (%s)", VERSION, settings.environment)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Fic.AI Signals",
        description="Tag signals for fics",
        version=VERSION,
        lifespan=lifespan
    )

    # CORS configuration
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    install_error_handlers(app)

    app.include_router(auth_router.router)
    app.include_router(signals_router.router)
    app.include_router(tags_router.router)

    @app.get("/")
    async def root():
        """
        Health check endpoint.
        """
        return {
            "status": "running",
            "version": VERSION
        }

    return app


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "ficai_signals.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
