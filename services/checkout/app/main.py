"""
Checkout order persistence service
Records placed orders and serves them back by order id or user id
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager
from typing import Optional
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from app.api.routes import router as orders_router
from app.core_settings import Settings, get_settings
from app.infrastructure.db import open_store

SERVICE_NAME = "checkout-orders-service"
SERVICE_DESCRIPTION = "Order persistence for the checkout flow"

logger = get_logger(__name__)

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the order store once at startup and close it once at shutdown"""
        logger.info(f"Starting {SERVICE_NAME} version {settings.SERVICE_VERSION}")
        app.state.order_store = open_store(settings)
        if app.state.order_store is None:
            logger.warning(f"{SERVICE_NAME} started without order persistence")
        else:
            logger.info(f"{SERVICE_NAME} started successfully")

        yield

        logger.info(f"Shutting down {SERVICE_NAME}")
        store, app.state.order_store = app.state.order_store, None
        if store is not None:
            store.close()

    app = FastAPI(
        title=SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )
    app.state.order_store = None

    app.add_middleware(RequestLoggingMiddleware)

    def database_check():
        store = app.state.order_store
        return store.ping if store is not None else None

    health_service = ServiceHealth(SERVICE_NAME, settings.SERVICE_VERSION, database_check)
    app.include_router(health_service.create_health_router())
    app.include_router(orders_router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
            "persistence": app.state.order_store is not None,
            "docs": "/api/docs"
        }

    @app.get("/info")
    async def info():
        """Service information endpoint"""
        return {
            "service": SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "description": SERVICE_DESCRIPTION,
            "environment": os.getenv("ENVIRONMENT", "development"),
            "endpoints": {
                "health": "/health",
                "ready": "/health/ready",
                "live": "/health/live",
                "metrics": "/metrics",
                "orders": "/orders/{order_id}",
                "user_orders": "/users/{user_id}/orders",
                "docs": "/api/docs"
            }
        }

    return app

setup_logging(
    service_name=SERVICE_NAME,
    level=get_settings().LOG_LEVEL
)

app = create_app()
