"""
Shared fixtures: fixed clocks, sample projects, an event factory and an
in-memory stand-in for a redis client.
"""
import fnmatch
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from irec_analytics.cache import AnalyticsCache
from irec_analytics.models import (
    Beneficiary,
    EventKind,
    EventStatus,
    ItemizedEvent,
    Participant,
    ParticipantType,
    Payment,
    PaymentMethod,
    ProjectRecord,
)
from irec_analytics.quantities import value_of
from irec_analytics.service import AnalyticsService
from irec_analytics.synthesizer import RecordSynthesizer

AS_OF = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced seconds clock for cache tests"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Minimal redis client: get / set(ex=) / delete / scan_iter"""

    def __init__(self):
        self.store = {}
        self.expiries = {}
        self.closed = False

    def ping(self):
        return True

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiries[key] = ex
        return True

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)
            self.expiries.pop(key, None)

    def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key.encode()

    def close(self):
        self.closed = True


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def solar_project():
    return ProjectRecord(
        id="irec-jp-solar-001",
        name="Hokkaido Solar Park",
        total_supply="1000000",
        current_supply="600000",
        retired="250000",
        vintage="2023",
        methodology="I-REC Standard",
        registry="I-REC",
        country="JP",
        technology="solar",
        current_price="42.50",
    )


@pytest.fixture
def projects(solar_project):
    return [
        solar_project,
        ProjectRecord(
            id="irec-vn-wind-014",
            total_supply="2500000",
            current_supply="900000",
            retired="1200000",
            vintage="2022",
            methodology="I-REC Standard",
            registry="I-REC",
            country="VN",
            technology="wind",
            current_price="38",
        ),
        ProjectRecord(
            id="irec-th-hydro-007",
            total_supply="300000",
            current_supply="280000",
            retired="15000",
            vintage="2024",
            methodology="I-REC Standard",
            registry="I-REC",
            country="TH",
            technology="hydro",
        ),
    ]


@pytest.fixture
def synthesizer(as_of):
    return RecordSynthesizer(clock=lambda: as_of)


@pytest.fixture
def service(as_of, fake_clock):
    cache = AnalyticsCache(clock=fake_clock)
    return AnalyticsService(cache=cache, clock=lambda: as_of)


@pytest.fixture
def make_event(as_of):
    """Build a hand-specified event; unspecified fields get fixed values"""

    def factory(
        index=0,
        quantity=100,
        participant="0xaaa",
        method=PaymentMethod.FIAT,
        hours_ago=1,
        status=EventStatus.CONFIRMED,
        methodology="I-REC Standard",
        vintage="2023",
        project_id="p1",
    ):
        return ItemizedEvent(
            id=f"retirement_{project_id}_{index + 1}",
            kind=EventKind.RETIREMENT,
            sequence=index,
            project_id=project_id,
            quantity=quantity,
            co2e_quantity=quantity,
            participant=Participant(address=participant, name=f"name-{participant}", category=ParticipantType.INDIVIDUAL),
            beneficiary=Beneficiary(name="Personal Offset", purpose="Travel Offset", description="test"),
            counterparty=None,
            timestamp=as_of - timedelta(hours=hours_ago),
            payment=Payment(
                method=method,
                currency="USD",
                processor="Stripe",
                usd_value=value_of(quantity, Decimal("40")),
                processing_fee=Decimal("0"),
                transaction_id=f"pay_{index}",
            ),
            status=status,
            vintage=vintage,
            methodology=methodology,
            registry="I-REC",
            transaction_hash="0x" + "0" * 64,
            block_number=1_298_000 + index,
            gas_used=21_000 + index,
            gas_price=Decimal("0.5"),
            serial_numbers=(),
            reason="Travel Offset",
            notes="",
            location="JP",
        )

    return factory
