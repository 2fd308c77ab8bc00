"""Money value object — integer minor units plus an ISO-4217 currency code.

All arithmetic stays in minor units. Rounding, where a rate is involved,
goes through Decimal with ROUND_HALF_UP; percentage discounts floor.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Integer, String

from storefront.domain import storefront

VALID_CURRENCIES = frozenset(
    {
        "USD",
        "EUR",
        "GBP",
        "JPY",
        "CAD",
        "AUD",
        "CHF",
        "CNY",
        "INR",
        "MXN",
        "BRL",
        "ARS",
        "KRW",
        "CLP",
        "COP",
    }
)

# Currencies without a minor unit; everything else uses two digits.
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "CLP"})


def minor_digits(currency: str) -> int:
    return 0 if currency in ZERO_DECIMAL_CURRENCIES else 2


@storefront.value_object
class Money:
    """A non-negative amount of money in the currency's minor unit."""

    amount: Integer(required=True, min_value=0)
    currency: String(max_length=3, default="USD")

    @invariant.post
    def currency_must_be_valid_iso_4217(self):
        if self.currency not in VALID_CURRENCIES:
            raise ValidationError({"currency": [f"Unsupported currency: {self.currency}"]})

    # -------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------
    @classmethod
    def zero(cls, currency="USD"):
        return cls(amount=0, currency=currency)

    @classmethod
    def from_major(cls, value, currency="USD"):
        """Build from a major-unit amount, e.g. ``Money.from_major("1000.00", "MXN")``."""
        scaled = Decimal(str(value)) * (Decimal(10) ** minor_digits(currency))
        return cls(amount=int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP)), currency=currency)

    def to_major(self) -> Decimal:
        return Decimal(self.amount) / (Decimal(10) ** minor_digits(self.currency))

    # -------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------
    def _assert_same_currency(self, other):
        if self.currency != other.currency:
            raise ValidationError({"currency": [f"Currency mismatch: {self.currency} vs {other.currency}"]})

    def add(self, other):
        self._assert_same_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def subtract(self, other):
        """Subtract, failing if the result would be negative."""
        self._assert_same_currency(other)
        if other.amount > self.amount:
            raise ValidationError(
                {"amount": [f"Cannot subtract {other.format()} from {self.format()}: result would be negative"]}
            )
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def clamped_subtract(self, other):
        """Subtract, flooring the result at zero (used when applying discount deltas)."""
        self._assert_same_currency(other)
        return Money(amount=max(self.amount - other.amount, 0), currency=self.currency)

    def percentage(self, percent):
        """``floor(amount * percent / 100)`` in minor units."""
        value = Decimal(self.amount) * Decimal(str(percent)) / Decimal(100)
        return Money(amount=int(value.to_integral_value(rounding=ROUND_FLOOR)), currency=self.currency)

    def apply_rate(self, rate):
        """Multiply by a decimal rate, rounding half-up to the minor unit."""
        value = Decimal(self.amount) * Decimal(str(rate))
        return Money(amount=int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP)), currency=self.currency)

    def minimum(self, other):
        self._assert_same_currency(other)
        return self if self.amount <= other.amount else other

    def convert(self, currency, rate):
        """Convert into ``currency`` at ``rate`` units of target per unit of source."""
        if currency not in VALID_CURRENCIES:
            raise ValidationError({"currency": [f"Unsupported currency: {currency}"]})
        target = self.to_major() * Decimal(str(rate)) * (Decimal(10) ** minor_digits(currency))
        return Money(amount=int(target.quantize(Decimal(1), rounding=ROUND_HALF_UP)), currency=currency)

    # -------------------------------------------------------------------
    # Comparison / display
    # -------------------------------------------------------------------
    def __lt__(self, other):
        self._assert_same_currency(other)
        return self.amount < other.amount

    def __le__(self, other):
        self._assert_same_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other):
        self._assert_same_currency(other)
        return self.amount > other.amount

    def __ge__(self, other):
        self._assert_same_currency(other)
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == 0

    def format(self) -> str:
        digits = minor_digits(self.currency)
        return f"{self.to_major():,.{digits}f} {self.currency}"
