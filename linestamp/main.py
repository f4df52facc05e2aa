# linestamp/main.py
from __future__ import annotations

import logging
import sys
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from linestamp.core.config import Settings, get_settings
from linestamp.core.errors import AppError
from linestamp.routes import auth as auth_routes
from linestamp.routes import images, presets, stamps, tokens
from linestamp.services.gcp_clients import Clients, build_clients
from linestamp.services.image_generator import ImageGenerator, MockImageGenerator
from linestamp.services.storage_gcp import StampStore, now_iso
from linestamp.services.submission import MockSubmitter, Submitter

logging.basicConfig(stream=sys.stderr, level=logging.INFO,
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)
access_logger = logging.getLogger("linestamp.access")

API_VERSION = "1.0.0"


def _error(status_code: int, category: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": category, "message": message})


RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    """Rate limiting, security headers, compression and access logging; CORS is added last (outermost)."""
    app.state.limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Resource-Policy"] = "same-site"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        access_logger.info("%s %s %d %.1fms", request.method, request.url.path,
                           response.status_code, (time.perf_counter() - started) * 1000)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _install_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # plain def: SlowAPIMiddleware calls this handler synchronously
    @app.exception_handler(RateLimitExceeded)
    def _rate_limited(request: Request, exc: RateLimitExceeded):
        logger.warning("Rate limit exceeded for %s on %s", get_remote_address(request), request.url.path)
        return _error(429, "Too Many Requests", RATE_LIMIT_MESSAGE)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        first = (exc.errors() or [{}])[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg") or "Invalid request")
        return _error(400, "Bad Request", message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error(404, "Not Found", "The requested resource was not found")
        return _error(exc.status_code, "Error", str(exc.detail))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = "Something went wrong" if settings.is_production else str(exc)
        return _error(500, "Internal Server Error", message)


def create_app(
    settings: Optional[Settings] = None,
    clients: Optional[Clients] = None,
    generator: Optional[ImageGenerator] = None,
    submitter: Optional[Submitter] = None,
    store: Optional[StampStore] = None,
) -> FastAPI:
    """
    Build the API. Everything external is resolved here once and kept on
    ``app.state``; tests pass in-memory clients instead of Firebase ones.
    """
    settings = settings or get_settings()
    if clients is None:
        clients = build_clients(settings)
    if store is None and clients is not None:
        store = StampStore(clients.db, clients.bucket)

    app = FastAPI(title="LINE Stamp Generator API", version=API_VERSION)
    app.state.settings = settings
    app.state.clients = clients
    app.state.store = store
    app.state.generator = generator or (MockImageGenerator(store) if store is not None else None)
    app.state.submitter = submitter or MockSubmitter(
        step_delay_s=settings.submission_step_delay_s,
        final_delay_s=settings.submission_final_delay_s,
    )

    _install_middleware(app, settings)
    _install_error_handlers(app, settings)

    @app.get("/health")
    def health():
        return {"status": "OK", "timestamp": now_iso(), "environment": settings.environment}

    @app.get("/api")
    def api_info():
        return {"message": "LINEスタンプ自動生成システム API", "version": API_VERSION, "status": "running"}

    app.include_router(auth_routes.router)
    app.include_router(tokens.router)
    app.include_router(images.router)
    app.include_router(presets.router)
    app.include_router(stamps.router)

    logger.info("API ready (environment=%s, firebase=%s)", settings.environment,
                "configured" if store is not None else "unavailable")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("linestamp.main:app", host="0.0.0.0", port=get_settings().port)
