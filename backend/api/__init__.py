"""
HTTP API
========
"""

from backend.api.router import api_router

__all__ = ["api_router"]
