"""Relay FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay import __version__
from relay.api.dependencies import get_media_store
from relay.config import get_settings
from relay.db import close_db, init_db
from relay.errors import InvalidRequestError, RelayError
from relay.services.gc.lifecycle import init_gc_scheduler, shutdown_gc_scheduler

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("relay.startup", version=__version__)
    await init_db()

    media_store = get_media_store()
    await media_store.startup()

    await init_gc_scheduler()

    yield

    logger.info("relay.shutdown")

    await shutdown_gc_scheduler()
    await media_store.shutdown()
    await close_db()


def _error_response(request: Request, exc: RelayError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    if exc.status_code >= 500:
        logger.error(
            "request.error",
            request_id=request_id,
            code=exc.code,
            error=exc.message,
            details=exc.details,
        )
    else:
        logger.info(
            "request.rejected",
            request_id=request_id,
            code=exc.code,
            status=exc.status_code,
            error=exc.message,
            details=exc.details,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Relay",
        description="Encrypted mailbox relay with pairing codes and capture sessions",
        version=__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests and turn crashes into the error envelope."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception("request.unhandled", request_id=request_id, path=request.url.path)
            response = JSONResponse(status_code=500, content={"error": str(e) or "Internal error"})
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        return _error_response(request, InvalidRequestError(message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    from relay.api.v1 import router as v1_router

    app.include_router(v1_router)

    # Added last so it wraps everything, including the 500 envelope
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allow_origins,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    return app


# Create default app instance
app = create_app()


def run() -> None:
    """Console entry point: serve the default app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "relay.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )


if __name__ == "__main__":
    run()
