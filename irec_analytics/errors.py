"""Exceptions raised by the analytics engine"""


class AnalyticsError(Exception):
    """Base class for analytics engine errors"""


class CacheUnavailable(AnalyticsError):
    """Cache backend could not be read or written"""


class ConfigurationError(AnalyticsError):
    """Environment configuration holds an invalid value"""
