"""
Synthesis Profiles
==================

Realism constants for synthesized retirement and transfer records:
1. Count tiers (how many events a project of a given size produces)
2. Participant mix (individual vs institutional retirers)
3. Payment method mix, processors and fee rates
4. Narrative text pools (reasons, purposes, names)
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .models import EventStatus, ParticipantType, PaymentMethod


# ============================================================================
# TEXT POOLS
# ============================================================================

RETIREMENT_REASONS = [
    "Corporate Net Zero Commitment",
    "Voluntary Carbon Offset",
    "Compliance Requirement",
    "ESG Investment Policy",
    "Event Carbon Neutrality",
    "Supply Chain Decarbonization",
    "Product Lifecycle Offset",
    "Annual Sustainability Report",
    "Climate Action Initiative",
    "Green Finance Mandate",
]

COMPANY_TYPES = [
    "Technology Corporation",
    "Energy Company",
    "Financial Institution",
    "Manufacturing Company",
    "Retail Corporation",
    "Healthcare Organization",
    "Transportation Company",
    "Real Estate Developer",
    "Consulting Firm",
    "Government Agency",
]

INDIVIDUAL_PURPOSES = [
    "Personal Carbon Footprint",
    "Travel Offset",
    "Home Energy Use",
    "Investment Portfolio",
    "Climate Activism",
    "Educational Purpose",
    "Family Sustainability",
    "Business Travel",
    "Vehicle Emissions",
    "Lifestyle Commitment",
]

FIRST_NAMES = ["John", "Sarah", "Michael", "Emily", "David", "Jessica", "Robert", "Lisa"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis"]
COMPANY_PREFIXES = ["Global", "International", "United", "Premier", "Advanced", "Sustainable"]
COMPANY_SUFFIXES = ["Inc", "Corp", "Ltd", "Group", "Holdings", "Partners"]

TRANSFER_REASONS = [
    "Secondary Market Trade",
    "Portfolio Rebalance",
    "Custody Transfer",
    "Broker Settlement",
    "Inventory Allocation",
]


# ============================================================================
# PAYMENT PROFILES
# ============================================================================

class PaymentProfiles:
    """Payment method mix, currencies, processors and fee rates"""

    # Marketplace-wide mix (AIS points dominate retail retirements)
    METHOD_WEIGHTS = {
        PaymentMethod.AIS_POINT: 0.45,
        PaymentMethod.FIAT: 0.30,
        PaymentMethod.CRYPTO: 0.20,
        PaymentMethod.OTHER: 0.05,
    }

    # Optional per-category mix, used only when category weighting is enabled
    CATEGORY_METHOD_WEIGHTS = {
        ParticipantType.INDIVIDUAL: {
            PaymentMethod.AIS_POINT: 0.60,
            PaymentMethod.FIAT: 0.10,
            PaymentMethod.CRYPTO: 0.25,
            PaymentMethod.OTHER: 0.05,
        },
        ParticipantType.CORPORATION: {
            PaymentMethod.AIS_POINT: 0.30,
            PaymentMethod.FIAT: 0.50,
            PaymentMethod.CRYPTO: 0.15,
            PaymentMethod.OTHER: 0.05,
        },
        ParticipantType.INSTITUTION: {
            PaymentMethod.AIS_POINT: 0.20,
            PaymentMethod.FIAT: 0.60,
            PaymentMethod.CRYPTO: 0.15,
            PaymentMethod.OTHER: 0.05,
        },
    }

    CURRENCIES = {
        PaymentMethod.AIS_POINT: ["AIS"],
        PaymentMethod.FIAT: ["USD", "EUR", "JPY", "GBP"],
        PaymentMethod.CRYPTO: ["USDC", "USDT", "ETH", "BTC"],
        PaymentMethod.OTHER: ["USD"],
    }

    PROCESSORS = {
        PaymentMethod.AIS_POINT: ["AIS Points Engine"],
        PaymentMethod.FIAT: ["Stripe", "PayPal", "Square", "Bank Wire"],
        PaymentMethod.CRYPTO: ["Coinbase Commerce", "BitPay", "Circle"],
        PaymentMethod.OTHER: ["Manual Settlement", "Gift Card"],
    }

    FEE_RATES = {
        PaymentMethod.AIS_POINT: Decimal("0.01"),
        PaymentMethod.FIAT: Decimal("0.029"),
        PaymentMethod.CRYPTO: Decimal("0.015"),
        PaymentMethod.OTHER: Decimal("0.02"),
    }


# ============================================================================
# SYNTHESIS PROFILE
# ============================================================================

# (retired quantity threshold, base count), checked largest first
DEFAULT_COUNT_TIERS: List[Tuple[int, int]] = [
    (1_000_000, 40),
    (500_000, 25),
    (100_000, 15),
    (0, 5),
]

DEFAULT_STATUS_WEIGHTS = {
    EventStatus.CONFIRMED: 0.95,
    EventStatus.PENDING: 0.04,
    EventStatus.FAILED: 0.01,
}


@dataclass
class SynthesisProfile:
    """
    Tunable realism parameters for the record synthesizer.

    Defaults reproduce the marketplace-wide mix; pass overrides to model a
    different registry or participant population.
    """
    count_tiers: List[Tuple[int, int]] = field(default_factory=lambda: list(DEFAULT_COUNT_TIERS))
    min_count: int = 3
    jitter_low: int = -5
    jitter_high: int = 4
    institutional_share: float = 0.30
    corporation_share: float = 0.50  # of institutional participants
    participant_pool_ratio: float = 0.6
    payment_weights: Dict[PaymentMethod, float] = field(
        default_factory=lambda: dict(PaymentProfiles.METHOD_WEIGHTS)
    )
    category_payment_weights: Optional[Dict[ParticipantType, Dict[PaymentMethod, float]]] = None
    status_weights: Dict[EventStatus, float] = field(
        default_factory=lambda: dict(DEFAULT_STATUS_WEIGHTS)
    )
    max_serial_numbers: int = 5
    base_block_number: int = 1_298_000
    block_spread: int = 10_000
    base_gas: int = 21_000
    gas_spread: int = 50_000
    pending_share: float = 0.05
    reserved_share: float = 0.05
    max_retirement_impact: float = 0.05

    def base_count(self, retired: int) -> int:
        for threshold, count in sorted(self.count_tiers, reverse=True):
            if retired > threshold or threshold == 0:
                return count
        return self.min_count

    def payment_weights_for(self, category: ParticipantType) -> Dict[PaymentMethod, float]:
        if self.category_payment_weights and category in self.category_payment_weights:
            return self.category_payment_weights[category]
        return self.payment_weights

    @classmethod
    def category_weighted(cls, **overrides) -> "SynthesisProfile":
        """Profile whose payment mix depends on the participant category"""
        overrides.setdefault(
            "category_payment_weights",
            {k: dict(v) for k, v in PaymentProfiles.CATEGORY_METHOD_WEIGHTS.items()},
        )
        return cls(**overrides)
