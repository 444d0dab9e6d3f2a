"""FastAPI application for the Sift research context service."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sift.api import router as api_router
from sift.config import Settings, get_settings
from sift.dependencies import Services, build_services
from sift.exceptions import MessageValidationError, SiftAppError
from sift.middleware.request_logging import RequestLoggingMiddleware
from sift.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(level=settings.log_level, json_format=settings.log_json, log_file=settings.log_file)
        app.state.services = services or build_services(settings)
        removed = app.state.services.history.cleanup()
        logger.info(f"{settings.app_title} {settings.app_version} started; pruned {removed} stale history entries")
        yield

    app = FastAPI(title=settings.app_title, version=settings.app_version, debug=settings.debug, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(MessageValidationError)
    async def handle_validation_error(request: Request, exc: MessageValidationError):
        return JSONResponse(status_code=400, content={"ok": False, "error": exc.message})

    @app.exception_handler(SiftAppError)
    async def handle_app_error(request: Request, exc: SiftAppError):
        logger.error(f"Unhandled application error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "sift", "version": settings.app_version}

    app.include_router(api_router)
    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("sift.main:app", host="127.0.0.1", port=8000, log_level=settings.log_level.lower())
