"""
Pricing tier lookup (display only, never used for seat transitions)
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional


@dataclass(frozen=True)
class PricingTier:
    code: str
    name: str
    price: Decimal
    display_color: str


DEFAULT_TIERS = {
    "P1": PricingTier("P1", "VIP", Decimal("50.00"), "#9b59b6"),
    "P2": PricingTier("P2", "Premium", Decimal("35.00"), "#3498db"),
    "P3": PricingTier("P3", "General", Decimal("25.00"), "#17a2b8"),
    "AA": PricingTier("AA", "Accessible", Decimal("25.00"), "#e67e22"),
}


class PricingService:
    def __init__(self, tiers: Optional[Dict[str, PricingTier]] = None):
        self.tiers = dict(tiers if tiers is not None else DEFAULT_TIERS)

    def lookup(self, tier: str) -> Optional[PricingTier]:
        return self.tiers.get(tier)


pricing_service = PricingService()
