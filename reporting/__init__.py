"""reporting package"""
from .reporter import AnalyticsReporter


__all__ = [
"AnalyticsReporter",
]
