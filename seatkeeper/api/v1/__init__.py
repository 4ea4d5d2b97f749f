"""
API v1 module initialization
"""

# Import all routers to make them available
from . import endpoints

__all__ = ["endpoints"]
