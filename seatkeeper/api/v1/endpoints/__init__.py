"""
API endpoints module
"""

from . import reservations, seats, admin, health

__all__ = [
    "reservations",
    "seats",
    "admin",
    "health"
]
