"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from koperasi_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from koperasi_gateway.api.v1 import reconciliation, schedule, transactions
from koperasi_gateway.infrastructure.observability.logging import setup_logging
from koperasi_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Koperasi Gateway",
        description="Savings schedule status and bank reconciliation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(schedule.router, prefix="/v1", tags=["schedule"])
    app.include_router(reconciliation.router, prefix="/v1", tags=["reconciliation"])

    return app


app = create_app()
