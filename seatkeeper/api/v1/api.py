"""
Main API Router
Aggregates all API endpoints for v1
"""

from fastapi import APIRouter
from seatkeeper.api.v1.endpoints import (
    reservations,
    seats,
    admin,
    health
)

api_router = APIRouter()

# Include all routers
api_router.include_router(reservations.router, prefix="/events", tags=["reservations"])
api_router.include_router(seats.router, prefix="/events", tags=["seats"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
