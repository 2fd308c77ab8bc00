"""Shipping quote — one carrier's price for one route, valid until ``expires_at``."""

from dataclasses import dataclass
from datetime import datetime

from storefront.shared.money import Money


@dataclass(frozen=True)
class ShippingQuote:
    carrier: str
    service_level: str
    price: Money
    estimated_days: int
    expires_at: datetime
    quoted_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
