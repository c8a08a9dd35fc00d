"""irec_analytics package"""
from .aggregator import Aggregator
from .cache import AnalyticsCache, MemoryCacheBackend, RedisCacheBackend, RefreshScheduler
from .config import Settings
from .distributor import distribute
from .errors import AnalyticsError, CacheUnavailable, ConfigurationError
from .metrics import MetricsCalculator
from .models import (
    AggregateBucket,
    AnalyticsResult,
    DatasetKind,
    EventKind,
    ItemizedEvent,
    PaymentMethod,
    ProjectRecord,
    to_payload,
)
from .profiles import SynthesisProfile
from .seed import hash_key, seeded_fraction
from .service import AnalyticsService
from .synthesizer import RecordSynthesizer


__all__ = [
"Aggregator",
"AnalyticsCache",
"MemoryCacheBackend",
"RedisCacheBackend",
"RefreshScheduler",
"Settings",
"distribute",
"AnalyticsError",
"CacheUnavailable",
"ConfigurationError",
"MetricsCalculator",
"AggregateBucket",
"AnalyticsResult",
"DatasetKind",
"EventKind",
"ItemizedEvent",
"PaymentMethod",
"ProjectRecord",
"to_payload",
"SynthesisProfile",
"hash_key",
"seeded_fraction",
"AnalyticsService",
"RecordSynthesizer",
]
