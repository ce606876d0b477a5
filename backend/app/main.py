"""FastAPI application factory."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings, load_settings
from app.gold import __version__
from app.gold.broadcaster import Broadcaster
from app.gold.cache import PriceCache
from app.gold.errors import (
    AllProvidersExhausted,
    GoldFeedError,
    InvalidQuery,
    SymbolUnsupported,
)
from app.gold.factory import create_provider_chain
from app.gold.query import QueryService
from app.gold.routes import create_gold_router
from app.gold.scheduler import RefreshScheduler
from app.gold.stream import create_stream_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

_STATUS_MAP: dict[type[GoldFeedError], int] = {
    SymbolUnsupported: 400,
    InvalidQuery: 400,
    AllProvidersExhausted: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the refresh loop on startup; stop it and drop subscribers on shutdown."""
    scheduler: RefreshScheduler = app.state.scheduler
    await scheduler.start()

    yield

    await scheduler.stop()
    await app.state.broadcaster.close()
    await app.state.chain.aclose()
    logger.info("Gold feed shut down")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Raises ConfigError if the settings cannot produce a working provider chain.
    """
    settings = settings or load_settings()

    chain = create_provider_chain(settings)
    cache = PriceCache()
    query = QueryService(cache, chain)
    broadcaster = Broadcaster(
        query,
        queue_size=settings.subscriber_queue_size,
        send_timeout=settings.subscriber_send_timeout,
    )
    scheduler = RefreshScheduler(
        chain,
        cache,
        broadcaster,
        symbols=list(settings.refresh_symbols),
        interval=settings.refresh_interval,
    )

    app = FastAPI(
        title="Gold Futures Real-time API",
        description="Real-time gold prices over HTTP and WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.chain = chain
    app.state.cache = cache
    app.state.query = query
    app.state.broadcaster = broadcaster
    app.state.scheduler = scheduler

    # Last added runs outermost: CORS headers also land on 500 envelopes
    app.middleware("http")(log_requests)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    gold_router = create_gold_router(query, version=__version__, environment=settings.environment)
    stream_router = create_stream_router(broadcaster)
    for prefix in ("", API_PREFIX):
        app.include_router(gold_router, prefix=prefix)
        app.include_router(stream_router, prefix=prefix)

    _register_exception_handlers(app)
    return app


async def log_requests(request: Request, call_next):
    """Log method, path, status and duration for every HTTP request.

    Unhandled errors become the 500 envelope here, inside the CORS layer.
    """
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        response = _error(500, "Internal server error")
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s -> %d (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": message})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GoldFeedError)
    async def gold_feed_error_handler(request: Request, exc: GoldFeedError):
        status = _STATUS_MAP.get(type(exc), 500)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error(status, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return _error(400, f"Invalid request: {details}")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error(404, "API endpoint not found")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")
