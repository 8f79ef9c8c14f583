"""
Business Services
=================
Ingestion, aggregation, alerting and notification services.
"""

from backend.services.aggregation import Aggregator
from backend.services.alert_config import AlertConfigService
from backend.services.alerts import ALERT_RULES, AlertEvaluation, AlertEvaluator
from backend.services.ingestion import IngestionService, IngestResult
from backend.services.notifications import NotificationDispatcher
from backend.services.senders import NotificationSender
from backend.services.stats import StatsService

__all__ = [
    "ALERT_RULES",
    "Aggregator",
    "AlertConfigService",
    "AlertEvaluation",
    "AlertEvaluator",
    "IngestResult",
    "IngestionService",
    "NotificationDispatcher",
    "NotificationSender",
    "StatsService",
]
