"""
Database Models
===============
SQLAlchemy ORM models for APImetrics.
"""

from backend.models.alert import Alert
from backend.models.base import Base
from backend.models.usage import ApiCall, DailyStats

__all__ = [
    "Base",
    "ApiCall",
    "DailyStats",
    "Alert",
]
