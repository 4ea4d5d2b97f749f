"""
FastAPI dependencies shared by the endpoint modules
"""

from typing import Optional
import hmac
import logging

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from seatkeeper.config import settings
from seatkeeper.core.exceptions import AuthorizationError
from seatkeeper.services.availability_projector import AvailabilityProjector
from seatkeeper.services.reservation_engine import ReservationEngine

logger = logging.getLogger(__name__)


def get_reservation_engine(request: Request) -> ReservationEngine:
    return request.app.state.reservation_engine


def get_projector(request: Request) -> AvailabilityProjector:
    return request.app.state.projector


def get_session_factory(request: Request) -> async_sessionmaker:
    return request.app.state.session_factory


def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """
    Dependency to require the admin API key.

    With no ADMIN_API_KEY configured the admin surface is closed entirely.
    """
    if not settings.ADMIN_API_KEY or not x_admin_key:
        raise AuthorizationError("Admin API key required")
    if not hmac.compare_digest(x_admin_key.encode(), settings.ADMIN_API_KEY.encode()):
        logger.warning("Rejected admin request with an invalid API key")
        raise AuthorizationError("Invalid admin API key")
