"""
Quantity Distributor
====================

Splits a project total into itemized quantities with a power-law skew: a few
large retirements and many small ones, the way real retirement ledgers look.
The last entry absorbs the rounding remainder so the parts always add back up
to the total exactly.
"""

from typing import List

from .seed import seeded_fraction

WEIGHT_SCALE = 1 << 53


def power_law_weights(count: int, seed: int) -> List[float]:
    """Squared seeded fractions, one per item"""
    return [seeded_fraction(seed + i) ** 2 for i in range(count)]


def distribute(total: int, count: int, seed: int) -> List[int]:
    """
    Distribute `total` into `count` non-negative integers.

    Returns an empty list when total or count is not positive. Small totals
    spread over many items leave some entries at 0; those stay in the result
    and callers that display events drop them.
    """
    if total <= 0 or count <= 0:
        return []

    # integer weights keep the floor division exact for very large supplies
    weights = [int(w * WEIGHT_SCALE) for w in power_law_weights(count, seed)]
    weight_sum = sum(weights)
    if weight_sum <= 0:
        weights = [1] * count
        weight_sum = count

    amounts: List[int] = []
    distributed = 0
    for weight in weights[:-1]:
        amount = total * weight // weight_sum
        amounts.append(amount)
        distributed += amount

    amounts.append(total - distributed)
    return amounts
