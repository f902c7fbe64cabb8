"""
FastAPI application entry point for the keepsake backend.
"""

from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from keepsake.auth import TokenIssuer
from keepsake.config import Settings, get_settings
from keepsake.db import DbClient
from keepsake.dependencies import (
    build_db_client,
    build_storage_client,
    build_upload_processor,
)
from keepsake.errors import KeepsakeError
from keepsake.routes import router
from keepsake.storage import LocalStorageClient, StorageClient

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header", "form")]
    return ".".join(parts) or "request"


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        msg = str(error.get("msg", "invalid value")).removeprefix("Value error, ")
        messages.append(f"{_field_name(error.get('loc', ()))}: {msg}")
    return ", ".join(messages) or "invalid request"


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(KeepsakeError)
    async def handle_keepsake_error(request: Request, exc: KeepsakeError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        response = _error(exc.status_code, str(exc.detail))
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        if settings.is_development:
            details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            return _error(500, "Internal server error", details=details)
        return _error(500, "Internal server error")


def create_app(
    settings: Settings | None = None,
    db: DbClient | None = None,
    storage: StorageClient | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    db = db or build_db_client(settings)
    storage = storage or build_storage_client(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Keepsake backend starting (%s)", settings.environment)
        yield
        logger.info("Keepsake backend shutting down")
        db.close()

    app = FastAPI(title="Keepsake Backend", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.storage = storage
    app.state.uploads = build_upload_processor(settings, storage)
    app.state.tokens = TokenIssuer.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app, settings)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health")
    def health():
        db.ping()
        return {"status": "ok"}

    if isinstance(storage, LocalStorageClient):
        app.mount(
            settings.uploads_url_prefix,
            StaticFiles(directory=storage.root),
            name="uploads",
        )
    return app


def main() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
