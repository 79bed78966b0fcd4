"""
Discount Tier Resolver - Quantity breaks for a template.
"""
from typing import Iterable, Optional

from .models import DiscountTier


def find_tier(tiers: Optional[Iterable[DiscountTier]], quantity: int) -> Optional[DiscountTier]:
    """
    Find the tier that applies to a quantity.

    Tiers are tried from the highest min_qty down, so overlapping
    definitions resolve to the biggest quantity break that still
    contains the quantity.
    """
    if not tiers:
        return None

    for tier in sorted(tiers, key=lambda t: t.min_qty, reverse=True):
        if tier.contains(quantity):
            return tier
    return None


def resolve_discount(tiers: Optional[Iterable[DiscountTier]], quantity: int) -> float:
    """Discount percentage for a quantity, 0 when no tier applies."""
    tier = find_tier(tiers, quantity)
    return float(tier.discount) if tier else 0.0


def find_overlaps(tiers: Iterable[DiscountTier]) -> list[tuple[DiscountTier, DiscountTier]]:
    """Pairs of tiers whose quantity ranges share at least one quantity."""
    ordered = sorted(tiers, key=lambda t: t.min_qty)
    overlaps = []
    for i, lower in enumerate(ordered):
        for upper in ordered[i + 1:]:
            if lower.max_qty is None or upper.min_qty <= lower.max_qty:
                overlaps.append((lower, upper))
    return overlaps
