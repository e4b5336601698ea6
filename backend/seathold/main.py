"""
Seat Hold Engine - Main Application Entry Point

Seat reservation and booking-state service:
- All-or-nothing seat holds with a five minute expiry
- Push + poll seat availability for open seat maps
- Booking lifecycle with payment, cancellation and refunds
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from seathold.api.errors import register_error_handlers
from seathold.api.middleware import RequestLoggingMiddleware
from seathold.api.router import api_router
from seathold.container import BookingCore, build_core
from seathold.core.config import get_settings
from seathold.core.logging import get_logger, setup_logging
from seathold.core.metrics import metrics_endpoint
from seathold.infrastructure.redis_client import RedisClient, redis_status


def create_app(core: BookingCore | None = None) -> FastAPI:
    """Build the application. A prebuilt core is used as-is (tests)."""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        logger = get_logger(__name__)
        logger.info(
            "application_starting",
            app=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            storage=settings.STORAGE_BACKEND,
            seat_gate=settings.SEAT_GATE_STRATEGY,
        )

        owned = core is None
        if owned:
            app.state.core = build_core(settings)
        app.state.core.start()

        yield

        await app.state.core.stop()
        if owned:
            await RedisClient.close()
        logger.info("application_shutdown")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Seat holds, availability and booking lifecycle for ticketed shows",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    if core is not None:
        app.state.core = core

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for Docker and load balancers."""
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "storage": settings.STORAGE_BACKEND,
            "seat_gate": await redis_status(),
            "active_holds": len(app.state.core.reservations.active_sessions()),
        }

    @app.get("/metrics", tags=["Health"], include_in_schema=False)
    def metrics():
        return metrics_endpoint()

    return app


app = create_app()
