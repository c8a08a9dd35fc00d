"""
Configuration
=============

Settings are read from the environment (and a local .env file via
python-dotenv). Unset variables fall back to defaults; set-but-invalid values
raise ConfigurationError rather than being silently ignored.

    IREC_LOOKBACK_DAYS          synthesis window in days (90)
    IREC_DEFAULT_PRICE          USD price for projects without one (40)
    IREC_CACHE_MAX_ENTRIES      cache capacity (1000)
    IREC_CACHE_TTL_<KIND>       seconds per dataset kind, e.g. IREC_CACHE_TTL_MARKET_DATA
    IREC_REFRESH_INTERVAL_SEC   dashboard refresh interval (60)
    IREC_REDIS_URL              redis cache URL (unset: in-memory cache)
    IREC_LOG_LEVEL              logging level (INFO)
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from .cache import DEFAULT_TTLS
from .errors import ConfigurationError
from .models import DEFAULT_PRICE, DatasetKind
from .quantities import parse_decimal

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _positive_number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


@dataclass
class Settings:
    lookback_days: int = 90
    default_price: Decimal = DEFAULT_PRICE
    cache_max_entries: int = 1000
    cache_ttls: Dict[DatasetKind, float] = field(default_factory=lambda: dict(DEFAULT_TTLS))
    refresh_interval_sec: float = 60.0
    redis_url: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "Settings":
        """Build settings from `environ` (default: os.environ after loading .env)"""
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        price_raw = environ.get("IREC_DEFAULT_PRICE")
        default_price = DEFAULT_PRICE
        if price_raw:
            default_price = parse_decimal(price_raw)
            if default_price is None or default_price <= 0:
                raise ConfigurationError(f"IREC_DEFAULT_PRICE must be a positive number, got {price_raw!r}")

        ttls = dict(DEFAULT_TTLS)
        for kind in DatasetKind:
            name = f"IREC_CACHE_TTL_{kind.name}"
            ttls[kind] = _positive_number(environ, name, ttls[kind])

        log_level = environ.get("IREC_LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(f"IREC_LOG_LEVEL must be one of {LOG_LEVELS}, got {log_level!r}")

        return cls(
            lookback_days=_positive_int(environ, "IREC_LOOKBACK_DAYS", 90),
            default_price=default_price,
            cache_max_entries=_positive_int(environ, "IREC_CACHE_MAX_ENTRIES", 1000),
            cache_ttls=ttls,
            refresh_interval_sec=_positive_number(environ, "IREC_REFRESH_INTERVAL_SEC", 60.0),
            redis_url=environ.get("IREC_REDIS_URL") or None,
            log_level=log_level,
        )

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)
