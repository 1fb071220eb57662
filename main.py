"""Lingua - chunked audio upload backend."""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from lingua.config import get_settings
from lingua.database import Database
from lingua.exceptions import LinguaError
from lingua.rate_limit import limiter
from lingua.routers import audio_router, streaming_router

settings = get_settings()

# Logging
logger = logging.getLogger("lingua")
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_body_size: int) -> None:
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_size:
            return error_response(413, "Request body too large")
        return await call_next(request)


# --- Request logging middleware ---
class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        if path.startswith("/api/"):
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                level,
                "%s %s -> %d (%.0fms) from %s",
                request.method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


def create_app(database: Database | None = None) -> FastAPI:
    """Build the API around a database handle that is opened on startup and closed on shutdown."""
    if database is None:
        database = Database(settings.DATABASE_URL, echo=settings.DEBUG)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        for warning in settings.validate():
            logger.warning("Config: %s", warning)
        owns_database = not database.is_open
        database.open()
        try:
            yield
        finally:
            if owns_database:
                database.close()

    app = FastAPI(title="Lingua", version="0.1.0", lifespan=lifespan)
    app.state.database = database
    app.state.limiter = limiter

    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=settings.MAX_REQUEST_SIZE_MB * 1024 * 1024)
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # API routers
    app.include_router(streaming_router)
    app.include_router(audio_router)

    @app.exception_handler(LinguaError)
    async def lingua_error_handler(request: Request, exc: LinguaError) -> JSONResponse:
        """Render service errors in the API's failure envelope."""
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed request bodies are client errors (400), like missing fields."""
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"Invalid request: {field} {first.get('msg', '')}".strip()
        else:
            message = "Invalid request"
        return error_response(400, message)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return error_response(429, "Rate limit exceeded. Try again later.")

    # --- Health check ---
    @app.get("/api/health")
    def health_check() -> dict:
        """Liveness probe."""
        return {
            "success": True,
            "message": "Lingua backend is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
