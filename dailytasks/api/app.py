"""FastAPI web application for dailytasks."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from dailytasks import __version__
from dailytasks.api.dependencies import get_settings
from dailytasks.api.task_routes import request_validation_handler, router as task_router
from dailytasks.config import STORAGE_SQL
from dailytasks.database.database import init_db
from dailytasks.logging_setup import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.storage == STORAGE_SQL:
        init_db()
    logger.info(
        f"dailytasks {__version__} starting (storage={settings.storage}, "
        f"migration_enabled={settings.migration_enabled})"
    )
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="dailytasks API",
        description="Daily to-do list backend for the browser extension",
        version=__version__,
        lifespan=lifespan,
    )

    # The extension calls the API from its own origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(task_router)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
