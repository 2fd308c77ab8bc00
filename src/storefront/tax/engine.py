"""Tax engine — flat-rate tax by destination jurisdiction.

Pure computation, no I/O. A destination that cannot be matched to a known
jurisdiction (unknown country, missing or malformed address fields) is taxed
at zero rather than failing checkout. That is a deliberate approximation.
"""

from decimal import Decimal

import structlog

from storefront.shared.money import Money
from storefront.tax.jurisdictions import default_rates, normalize_country

logger = structlog.get_logger(__name__)

ZERO_RATE = Decimal("0")


class TaxEngine:
    def __init__(self, rates: dict[str, Decimal] | None = None):
        self.rates = {key.upper(): Decimal(str(rate)) for key, rate in (rates or default_rates()).items()}

    def jurisdiction_for(self, address) -> str | None:
        """Most specific known jurisdiction key for the address, if any."""
        if address is None:
            return None
        country = normalize_country(getattr(address, "country", None))
        if country is None:
            return None
        state = (getattr(address, "state", None) or "").strip().upper()
        if state and f"{country}-{state}" in self.rates:
            return f"{country}-{state}"
        if country in self.rates:
            return country
        return None

    def rate_for(self, address) -> Decimal:
        jurisdiction = self.jurisdiction_for(address)
        if jurisdiction is None:
            return ZERO_RATE
        return self.rates[jurisdiction]

    def compute_tax(self, cart, address=None, discount: Money | None = None) -> Money:
        """Tax owed on ``subtotal - discount`` at the destination's rate.

        ``address`` defaults to the cart's destination. The result is rounded
        half-up to the currency's minor unit.
        """
        address = address if address is not None else cart.destination
        base = cart.subtotal
        if discount is not None:
            base = base.clamped_subtract(discount)

        jurisdiction = self.jurisdiction_for(address)
        if jurisdiction is None:
            logger.warning(
                "No tax jurisdiction matched, charging zero tax",
                country=getattr(address, "country", None),
                state=getattr(address, "state", None),
            )
            return Money.zero(base.currency)

        return base.apply_rate(self.rates[jurisdiction])
