"""Services package."""

from backend.app.services.integration_aggregator import IntegrationAggregator, compute_integration_health
from backend.app.services.behavior_analytics import BehaviorAnalyticsService

__all__ = [
    "IntegrationAggregator",
    "compute_integration_health",
    "BehaviorAnalyticsService",
]
