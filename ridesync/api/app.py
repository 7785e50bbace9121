"""
FastAPI application factory.

* Builds the configured ledger adapter (in-memory or SQL/Redis backed).
* Starts / stops the adapter's watcher via lifespan events.
* Translates ride-domain errors into HTTP responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridesync.api.middleware import limiter
from ridesync.api.routes import admin, rides, views
from ridesync.config import Settings, settings
from ridesync.domain.errors import (
    AlreadyRated,
    AlreadyTaken,
    InvalidTransition,
    NotFound,
    RejectedByLedger,
    RideError,
    Unknown,
)
from ridesync.domain.ledger import LedgerAdapter
from ridesync.domain.queries import QueryService
from ridesync.infrastructure.local_ledger import LocalLedgerAdapter

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[RideError], int] = {
    NotFound: 404,
    InvalidTransition: 409,
    AlreadyTaken: 409,
    AlreadyRated: 409,
    RejectedByLedger: 502,
    Unknown: 504,
}


def build_ledger(config: Settings = settings) -> LedgerAdapter:
    """Ledger adapter for the configured backend."""
    if config.ledger_backend == "local":
        return LocalLedgerAdapter()

    from ridesync.infrastructure.database import create_session_factory
    from ridesync.infrastructure.redis_client import create_redis
    from ridesync.infrastructure.remote_ledger import RemoteLedgerAdapter
    from ridesync.infrastructure.sql_ledger import SqlLedgerClient

    client = SqlLedgerClient(
        create_session_factory(config.database_url),
        create_redis(config.redis_url),
        channel=config.events_channel,
        default_lat=config.default_latitude,
        default_lng=config.default_longitude,
    )
    return RemoteLedgerAdapter(
        client,
        window=config.ledger_window,
        poll_interval=config.poll_interval_seconds,
        reconnect_backoff=config.reconnect_backoff_seconds,
    )


async def ride_error_handler(request: Request, exc: RideError) -> JSONResponse:
    status = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500
    )
    if status >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the ledger adapter on startup; stop it on shutdown."""
    await app.state.ledger.start()
    logger.info("Ledger adapter %s started", type(app.state.ledger).__name__)
    yield
    await app.state.ledger.stop()


def create_app(ledger: Optional[LedgerAdapter] = None) -> FastAPI:
    app = FastAPI(
        title="Ride Ledger Sync API",
        description=(
            "Coordinates rides between requesters and providers on a shared "
            "ledger.  Every mutation is validated against the ride state "
            "machine; views are derived from the latest ledger snapshot."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.ledger = ledger if ledger is not None else build_ledger()
    app.state.queries = QueryService(app.state.ledger)
    app.state.queries.attach()

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RideError, ride_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(views.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
