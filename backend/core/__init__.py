"""
Core
====
Cross-cutting pipeline instrumentation.
"""

from backend.core import metrics

__all__ = ["metrics"]
