# booking_ledger/main.py

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from booking_ledger.config import (
    ALLOWED_ORIGINS,
    DATABASE_URL,
    STRIPE_SECRET_KEY,
    SYNC_SCHEDULER_ENABLED,
)
from booking_ledger.db.engine import create_db_engine
from booking_ledger.errors import BookingError
from booking_ledger.logging_config import setup_logging
from booking_ledger.middleware import RequestIDMiddleware
from booking_ledger.notifications import LoggingNotifier, Notifier
from booking_ledger.payments import PaymentProcessor, StripePaymentProcessor
from booking_ledger.routes.health import router as health_router
from booking_ledger.routes.metrics import router as metrics_router
from booking_ledger.routes.reservations import router as reservations_router
from booking_ledger.routes.sync import router as sync_router
from booking_ledger.security.rate_limit import RateLimiter
from booking_ledger.security.rate_limit import rate_limiter as default_rate_limiter
from booking_ledger.services.retry_queue import RetryScheduler
from booking_ledger.services.sync import SyncDispatcher

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)


def create_app(
    engine: Optional[Engine] = None,
    *,
    dispatcher: Optional[SyncDispatcher] = None,
    payment_processor: Optional[PaymentProcessor] = None,
    notifier: Optional[Notifier] = None,
    rate_limiter: Optional[RateLimiter] = None,
    start_scheduler: bool = SYNC_SCHEDULER_ENABLED,
) -> FastAPI:
    """
    Build the booking ledger API.

    Collaborators not passed in are created at startup from configuration.

    Args:
        engine: Database engine. Defaults to one built from DATABASE_URL.
        dispatcher: Calendar sync dispatcher
        payment_processor: Refund backend. Defaults to Stripe when STRIPE_SECRET_KEY is set.
        notifier: Guest message sender
        rate_limiter: Limiter for access token verification
        start_scheduler: Run the sync retry scheduler in this process

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(
        title="Booking Ledger API",
        description="Rental reservations with conflict checks, cancellation and marketplace sync",
        version="1.0.0",
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    # Register routers
    app.include_router(health_router, tags=["Health"])
    app.include_router(metrics_router, tags=["Metrics"])
    app.include_router(reservations_router, tags=["Reservations"])
    app.include_router(sync_router, tags=["Sync"])

    @app.exception_handler(BookingError)
    def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    @app.on_event("startup")
    def startup_event() -> None:
        """Wire the engine and background workers onto app.state."""
        logger.info("FastAPI application starting up...")

        app.state.engine = engine or create_db_engine(DATABASE_URL)
        app.state.dispatcher = dispatcher or SyncDispatcher(app.state.engine)
        app.state.notifier = notifier or LoggingNotifier()
        app.state.rate_limiter = rate_limiter or default_rate_limiter

        processor = payment_processor
        if processor is None and STRIPE_SECRET_KEY:
            processor = StripePaymentProcessor()
        if processor is None:
            logger.warning("payment_processor_not_configured")
        app.state.payment_processor = processor

        app.state.scheduler = None
        if start_scheduler:
            app.state.scheduler = RetryScheduler(app.state.engine)
            app.state.scheduler.start()

        logger.info("FastAPI application initialized", scheduler_enabled=start_scheduler)

    @app.on_event("shutdown")
    def shutdown_event() -> None:
        """Stop background workers."""
        if app.state.scheduler is not None:
            app.state.scheduler.stop()
        app.state.dispatcher.shutdown(wait=True)
        logger.info("FastAPI application shut down")

    return app


app = create_app()
