"""
APImetrics Backend
==================
Ingestion, aggregation and alerting service for LLM API usage telemetry.
"""

__version__ = "1.0.0"
