"""FastAPI application factory"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from credit_settlement.api.middleware import RequestIDMiddleware, MetricsMiddleware
from credit_settlement.api.v1 import lifecycle, notifications, orders, purchases, tiers, vendors
from credit_settlement.infrastructure.database.session import init_db
from credit_settlement.infrastructure.observability.logging import setup_logging
from credit_settlement.workers.lifecycle_sweep import lifecycle_sweep_worker
from credit_settlement.config import settings

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    sweep = None
    if settings.lifecycle_sweep_enabled:
        sweep = asyncio.create_task(lifecycle_sweep_worker())
        logger.info(
            "Lifecycle sweep started",
            extra={"interval_seconds": settings.lifecycle_sweep_interval_seconds},
        )

    yield

    if sweep is not None:
        sweep.cancel()
        try:
            await sweep
        except asyncio.CancelledError:
            pass


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Vendor Credit & Settlement Engine",
        description="Vendor credit limits, tiered repayment, service-area exclusivity and earnings",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(vendors.router, prefix="/v1", tags=["vendors"])
    app.include_router(tiers.router, prefix="/v1", tags=["tiers"])
    app.include_router(purchases.router, prefix="/v1", tags=["credit-purchases"])
    app.include_router(orders.router, prefix="/v1", tags=["orders"])
    app.include_router(lifecycle.router, prefix="/v1", tags=["lifecycle"])
    app.include_router(notifications.router, prefix="/v1", tags=["notifications"])

    return app


app = create_app()
