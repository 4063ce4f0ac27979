"""
FastAPI dependency injection providers.

The engine and the long-lived collaborators (sync dispatcher, notifier,
payment processor) are created once at application startup and stored on
app.state; these providers hand them to route handlers. Override them in
tests with app.dependency_overrides or by passing explicit objects to
create_app().
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from booking_ledger.notifications import Notifier
from booking_ledger.payments import PaymentProcessor
from booking_ledger.security.rate_limit import RateLimiter
from booking_ledger.services.sync import SyncDispatcher


def get_db_engine(request: Request) -> Generator[Engine, None, None]:
    """
    Provide the application's database engine.

    Yields:
        Engine: SQLAlchemy database engine

    Example:
        >>> @router.post("/reservations")
        >>> def create(payload: ReservationCreatePayload, engine: Engine = Depends(get_db_engine)):
        ...     ...
    """
    yield request.app.state.engine


def get_sync_dispatcher(request: Request) -> Optional[SyncDispatcher]:
    return getattr(request.app.state, "dispatcher", None)


def get_notifier(request: Request) -> Optional[Notifier]:
    return getattr(request.app.state, "notifier", None)


def get_payment_processor(request: Request) -> Optional[PaymentProcessor]:
    return getattr(request.app.state, "payment_processor", None)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter
