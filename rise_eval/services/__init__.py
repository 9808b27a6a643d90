"""Services package exports."""

from rise_eval.services.api_client import AuthSession, EvaluationApiClient
from rise_eval.services.evaluation_service import EvaluationSession
from rise_eval.services.logging_service import configure_logging, get_logger
from rise_eval.services.metric_cache import MetricCatalogCache

__all__ = [
    "AuthSession",
    "EvaluationApiClient",
    "EvaluationSession",
    "MetricCatalogCache",
    "configure_logging",
    "get_logger",
]
