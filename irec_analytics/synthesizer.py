"""
Record Synthesizer
==================

Expands a coarse ProjectRecord into itemized retirement / transfer events that
add back up to the project's totals, plus the market snapshot and daily price
history shown next to them.

Everything is derived from the project id through the seed utility, so the
same project, count and anchor time always yield identical records.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from .distributor import distribute
from .instrumentation import events_synthesized_total
from .models import (
    DEFAULT_PRICE,
    Beneficiary,
    EventKind,
    ItemizedEvent,
    MarketData,
    Participant,
    ParticipantType,
    Payment,
    PricePoint,
    ProjectRecord,
)
from .profiles import (
    COMPANY_PREFIXES,
    COMPANY_SUFFIXES,
    COMPANY_TYPES,
    FIRST_NAMES,
    INDIVIDUAL_PURPOSES,
    LAST_NAMES,
    RETIREMENT_REASONS,
    TRANSFER_REASONS,
    PaymentProfiles,
    SynthesisProfile,
)
from .quantities import to_money, value_of
from .seed import (
    hash_key,
    pick,
    seeded_address,
    seeded_fraction,
    seeded_int,
    seeded_tx_hash,
    weighted_index,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

SECONDS_PER_DAY = 24 * 60 * 60

# per-field salts so one item seed feeds uncorrelated draws
SALT_PARTICIPANT = 1
SALT_TIME = 2
SALT_PAYMENT = 3
SALT_CURRENCY = 4
SALT_PROCESSOR = 5
SALT_STATUS = 6
SALT_TX = 7
SALT_COUNTERPARTY = 8
SALT_PURPOSE = 9


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _salted(seed: int, salt: int) -> int:
    return (seed << 8) + salt


def _decimal(value: float) -> Decimal:
    return Decimal(str(value))


class RecordSynthesizer:
    """Deterministic generator of itemized events for one project at a time"""

    def __init__(
        self,
        profile: Optional[SynthesisProfile] = None,
        clock: Optional[Clock] = None,
        default_price: Decimal = DEFAULT_PRICE,
        lookback_days: int = 90,
    ):
        self.profile = profile or SynthesisProfile()
        self.clock = clock or utc_now
        self.default_price = default_price
        self.lookback_days = lookback_days

    # ===== COUNTS & TOTALS =====

    def default_count(self, project: ProjectRecord, total: Optional[int] = None) -> int:
        """Size-tiered event count with a per-project jitter"""
        quantity = project.retired_quantity if total is None else total
        profile = self.profile
        span = profile.jitter_high - profile.jitter_low + 1
        jitter = profile.jitter_low + hash_key(project.id) % span
        return max(profile.min_count, profile.base_count(quantity) + jitter)

    @staticmethod
    def source_total(project: ProjectRecord, kind: EventKind) -> int:
        if kind == EventKind.TRANSFER:
            return project.locked_quantity
        return project.retired_quantity

    # ===== EVENTS =====

    def synthesize(
        self,
        project: ProjectRecord,
        count: Optional[int] = None,
        lookback_days: Optional[int] = None,
        kind: EventKind = EventKind.RETIREMENT,
        total: Optional[int] = None,
        as_of: Optional[datetime] = None,
    ) -> List[ItemizedEvent]:
        """
        Generate itemized events for a project, newest first.

        Args:
            project: Source record
            count: Number of items to split the total into (default: tiered)
            lookback_days: Events fall within this many days before `as_of`
            kind: Retirements split the retired quantity, transfers the
                locked (total - available) quantity
            total: Explicit quantity to split instead of the project's
            as_of: Anchor time (default: the synthesizer clock)

        Returns:
            Events whose quantities sum exactly to the source total. An
            unusable or zero total yields an empty list.
        """
        source_total = self.source_total(project, kind) if total is None else max(int(total), 0)
        if source_total <= 0:
            return []

        if count is None:
            count = self.default_count(project, source_total)
        if count <= 0:
            return []

        lookback = self.lookback_days if lookback_days is None else max(int(lookback_days), 0)
        anchor = as_of or self.clock()
        price = project.unit_price(self.default_price)

        project_seed = hash_key(self._key(project.id, kind))
        amounts = distribute(source_total, count, project_seed)
        pool_size = max(1, int(round(count * self.profile.participant_pool_ratio)))

        events = []
        for index, amount in enumerate(amounts):
            if amount <= 0:
                continue
            item_seed = hash_key(self._key(project.id, kind) + str(index))
            events.append(
                self._build_event(project, kind, index, amount, item_seed, pool_size, lookback, anchor, price)
            )

        # sequence order first, then a stable newest-first sort keeps ties ordered
        events.sort(key=lambda e: e.sequence)
        events.sort(key=lambda e: e.timestamp, reverse=True)

        events_synthesized_total.labels(kind=kind.value).inc(len(events))
        logger.debug(f"Synthesized {len(events)} {kind.value} events for project {project.id}")
        return events

    @staticmethod
    def _key(project_id: str, kind: EventKind) -> str:
        # retirements keep the bare project id as their seed key
        if kind == EventKind.RETIREMENT:
            return project_id
        return f"{project_id}:{kind.value}"

    def _build_event(
        self,
        project: ProjectRecord,
        kind: EventKind,
        index: int,
        amount: int,
        seed: int,
        pool_size: int,
        lookback_days: int,
        anchor: datetime,
        price: Decimal,
    ) -> ItemizedEvent:
        profile = self.profile

        slot = seeded_int(_salted(seed, SALT_PARTICIPANT), 0, pool_size - 1)
        participant = self._participant(project.id, slot)

        offset = int(seeded_fraction(_salted(seed, SALT_TIME)) * lookback_days * SECONDS_PER_DAY)
        timestamp = anchor - timedelta(seconds=offset)

        tx_hash = seeded_tx_hash(_salted(seed, SALT_TX))
        payment = self._payment(participant.category, amount, price, seed, tx_hash)

        statuses = list(profile.status_weights)
        status = statuses[weighted_index([profile.status_weights[s] for s in statuses], _salted(seed, SALT_STATUS))]

        if kind == EventKind.TRANSFER:
            beneficiary = Beneficiary(
                name=participant.name,
                purpose=pick(TRANSFER_REASONS, _salted(seed, SALT_PURPOSE)),
                description="Token transfer between registry accounts",
            )
            counterparty = seeded_address(_salted(seed, SALT_COUNTERPARTY))
            notes = f"Transfer of {amount} tokens on the {project.registry or 'registry'} ledger."
        else:
            beneficiary = self._beneficiary(participant.category, seed)
            counterparty = None
            notes = self._retirement_notes(participant.category, amount)

        serial_base = 1_000_000 + seed % 900_000
        serials = tuple(str(serial_base + i) for i in range(min(amount, profile.max_serial_numbers)))

        return ItemizedEvent(
            id=f"{kind.value}_{project.id}_{index + 1}",
            kind=kind,
            sequence=index,
            project_id=project.id,
            quantity=amount,
            co2e_quantity=amount,
            participant=participant,
            beneficiary=beneficiary,
            counterparty=counterparty,
            timestamp=timestamp,
            payment=payment,
            status=status,
            vintage=project.vintage,
            methodology=project.methodology,
            registry=project.registry,
            transaction_hash=tx_hash,
            block_number=profile.base_block_number + seed % profile.block_spread,
            gas_used=profile.base_gas + seed % profile.gas_spread,
            gas_price=Decimal(seed % 100) / Decimal(100),
            serial_numbers=serials,
            reason=beneficiary.purpose,
            notes=notes,
            location=project.country,
        )

    def _participant(self, project_id: str, slot: int) -> Participant:
        """Participant `slot` of the project's pool; repeated slots repeat the retirer"""
        seed = hash_key(f"{project_id}:participant:{slot}")
        profile = self.profile

        if seeded_fraction(seed) < profile.institutional_share:
            is_corporation = seeded_fraction(seed + 1) < profile.corporation_share
            category = ParticipantType.CORPORATION if is_corporation else ParticipantType.INSTITUTION
            name = " ".join([
                pick(COMPANY_PREFIXES, seed + 2),
                pick(COMPANY_TYPES, seed + 3),
                pick(COMPANY_SUFFIXES, seed + 4),
            ])
        else:
            category = ParticipantType.INDIVIDUAL
            name = f"{pick(FIRST_NAMES, seed + 2)} {pick(LAST_NAMES, seed + 3)}"

        return Participant(address=seeded_address(seed), name=name, category=category)

    def _payment(
        self,
        category: ParticipantType,
        amount: int,
        price: Decimal,
        seed: int,
        tx_hash: str,
    ) -> Payment:
        weights = self.profile.payment_weights_for(category)
        methods = list(weights)
        method = methods[weighted_index([weights[m] for m in methods], _salted(seed, SALT_PAYMENT))]

        usd_value = value_of(amount, price)
        return Payment(
            method=method,
            currency=pick(PaymentProfiles.CURRENCIES[method], _salted(seed, SALT_CURRENCY)),
            processor=pick(PaymentProfiles.PROCESSORS[method], _salted(seed, SALT_PROCESSOR)),
            usd_value=usd_value,
            processing_fee=to_money(usd_value * PaymentProfiles.FEE_RATES[method]),
            transaction_id=f"pay_{tx_hash[2:10]}",
        )

    @staticmethod
    def _beneficiary(category: ParticipantType, seed: int) -> Beneficiary:
        if category == ParticipantType.INDIVIDUAL:
            return Beneficiary(
                name="Personal Offset",
                purpose=pick(INDIVIDUAL_PURPOSES, _salted(seed, SALT_PURPOSE)),
                description="Individual carbon footprint offset",
            )
        return Beneficiary(
            name="Corporate Initiative",
            purpose=pick(RETIREMENT_REASONS, _salted(seed, SALT_PURPOSE)),
            description="Corporate sustainability and carbon neutrality program",
        )

    @staticmethod
    def _retirement_notes(category: ParticipantType, amount: int) -> str:
        notes = f"Retirement of {amount} carbon credits for offset purposes."
        if category == ParticipantType.INDIVIDUAL:
            return f"{notes} Personal commitment to carbon neutrality."
        return f"{notes} Part of corporate sustainability initiative."

    # ===== MARKET =====

    def market_data(
        self,
        project: ProjectRecord,
        events: List[ItemizedEvent],
        as_of: Optional[datetime] = None,
    ) -> MarketData:
        """Current price, 24h trading figures and liquidity for a project"""
        anchor = as_of or self.clock()
        project_hash = hash_key(project.id)
        base_price = project.unit_price(self.default_price)

        recent = [e for e in events if anchor - e.timestamp < timedelta(days=1)]
        rate_24h = sum(e.co2e_quantity for e in recent)

        # heavy retirement activity carries a small price premium
        impact = min(rate_24h / 10_000, self.profile.max_retirement_impact)
        current = to_money(base_price * _decimal(1 + impact))

        volatility = 0.02 + (project_hash % 100) / 10_000
        change_24h = (seeded_fraction(project_hash + 1) - 0.5) * volatility * 2
        change_7d = (seeded_fraction(project_hash + 2) - 0.5) * volatility * 7

        total = project.total_quantity
        available = project.available_quantity
        locked = project.locked_quantity

        return MarketData(
            project_id=project.id,
            current_price=current,
            currency="USD",
            change_24h=change_24h * 100,
            change_7d=change_7d * 100,
            volume_24h=value_of(rate_24h, current),
            market_cap=value_of(total, current),
            high_24h=to_money(current * _decimal(1 + volatility)),
            low_24h=to_money(current * _decimal(1 - volatility)),
            open_24h=to_money(current * _decimal(1 + change_24h)),
            trades_24h=len(recent),
            retirement_rate_24h=rate_24h,
            retirement_impact=impact * 100,
            liquidity_available=available,
            liquidity_locked=locked,
            liquidity_utilization=(locked / total * 100) if total > 0 else 0.0,
            timestamp=anchor,
        )

    def price_history(
        self,
        project: ProjectRecord,
        events: List[ItemizedEvent],
        days: int = 30,
        as_of: Optional[datetime] = None,
    ) -> List[PricePoint]:
        """One point per day for the last `days` days (oldest first), inclusive of today"""
        if days < 0:
            return []

        anchor = as_of or self.clock()
        base_price = project.unit_price(self.default_price)
        total = project.total_quantity

        daily: Dict[str, int] = {}
        for event in events:
            day_key = event.timestamp.date().isoformat()
            daily[day_key] = daily.get(day_key, 0) + event.co2e_quantity

        points = []
        for i in range(days, -1, -1):
            moment = anchor - timedelta(days=i)
            day_key = moment.date().isoformat()
            day_amount = daily.get(day_key, 0)

            trend_factor = 1 + ((days - i) / days) * 0.1 if days else 1.0
            retirement_factor = 1 + (day_amount / 100_000) * 0.02
            # keyed on the calendar day so a moving anchor keeps past prices
            noise = 0.95 + seeded_fraction(hash_key(f"{project.id}:price:{day_key}")) * 0.1

            price = to_money(base_price * _decimal(trend_factor * retirement_factor * noise))
            points.append(PricePoint(
                timestamp=moment.replace(hour=0, minute=0, second=0, microsecond=0),
                price=price,
                volume=value_of(day_amount, price),
                retirements=day_amount,
                market_cap=value_of(total, price),
            ))

        return points
