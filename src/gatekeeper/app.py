"""FastAPI application hosting the Gatekeeper middleware."""

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from gatekeeper import __version__
from gatekeeper.config import get_settings
from gatekeeper.logging import setup_logging
from gatekeeper.metrics import metrics
from gatekeeper.middleware import SecurityGateMiddleware
from gatekeeper.models import ErrorBody
from gatekeeper.responses import generate_request_id, isoformat
from gatekeeper.store import get_store

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    settings = get_settings()
    logger.info("gatekeeper_starting", version=__version__, store=settings.store_backend)

    store = get_store()
    try:
        await store.connect()
    except Exception as e:
        logger.error("store_connection_failed", error=str(e))
        raise

    yield

    # Shutdown
    await store.disconnect()
    logger.info("gatekeeper_stopped")


app = FastAPI(
    title="Gatekeeper",
    version=__version__,
    description="Request-time security gate: deny-lists, rate limiting and input screening",
    lifespan=lifespan,
)


# === Middleware ===


@app.middleware("http")
async def metrics_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Record HTTP metrics for each request."""
    response: Response = await call_next(request)

    metrics.http_requests_total.labels(
        method=request.method,
        status=response.status_code,
    ).inc()

    return response


# Added last so it runs first, ahead of routing and metrics
app.add_middleware(SecurityGateMiddleware)


# === Health endpoints ===


@app.get("/health", tags=["Health"])
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    store = get_store()
    store_healthy = await store.health_check()

    status = "healthy" if store_healthy else "degraded"

    return {
        "status": status,
        "version": __version__,
        "checks": {
            "store": "ok" if store_healthy else "error",
        },
    }


@app.get("/ready", tags=["Health"])
async def ready() -> dict[str, str]:
    """Readiness check endpoint."""
    store = get_store()
    if not await store.health_check():
        raise HTTPException(status_code=503, detail="Rate-limit store not available")
    return {"status": "ready"}


# === Metrics endpoint ===


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# === Error handlers ===


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with the same body shape the gate uses."""
    now = time.time()
    request_id = getattr(request.state, "request_id", None) or generate_request_id(now)
    logger.exception(
        "unhandled_exception",
        error=str(exc),
        path=request.url.path,
        request_id=request_id,
    )
    body = ErrorBody(error="Internal server error", timestamp=isoformat(now), requestId=request_id)
    return JSONResponse(
        status_code=500,
        content=body.to_json(),
        headers={"X-Request-ID": request_id},
    )


def create_app() -> FastAPI:
    """Factory function to create the app."""
    return app
