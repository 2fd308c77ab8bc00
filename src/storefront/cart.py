"""Cart — the immutable, already-priced input handed to checkout.

A cart is never edited in place: ``revise`` returns a new cart.
"""

from dataclasses import dataclass, field, replace

from protean.exceptions import ValidationError

from storefront.shared.address import Address
from storefront.shared.money import Money


@dataclass(frozen=True)
class CartLine:
    product_id: str
    unit_price: Money
    quantity: int

    def __post_init__(self):
        if not self.product_id:
            raise ValidationError({"product_id": ["Cart line needs a product id"]})
        if not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError({"quantity": [f"Quantity must be a positive integer, got {self.quantity!r}"]})

    @property
    def line_total(self) -> Money:
        return Money(amount=self.unit_price.amount * self.quantity, currency=self.unit_price.currency)


@dataclass(frozen=True)
class Cart:
    lines: tuple[CartLine, ...]
    destination: Address
    coupon_code: str | None = None
    customer_id: str | None = None
    contact_email: str | None = None
    payment_ref: str | None = None
    weight: float | None = None
    metadata: dict = field(default_factory=dict, compare=False)

    def __post_init__(self):
        lines = tuple(self.lines)
        if not lines:
            raise ValidationError({"lines": ["Cart must contain at least one line"]})
        currencies = {line.unit_price.currency for line in lines}
        if len(currencies) > 1:
            raise ValidationError({"lines": [f"Cart mixes currencies: {', '.join(sorted(currencies))}"]})
        object.__setattr__(self, "lines", lines)
        if self.coupon_code is not None:
            object.__setattr__(self, "coupon_code", self.coupon_code.strip() or None)

    @property
    def currency(self) -> str:
        return self.lines[0].unit_price.currency

    @property
    def subtotal(self) -> Money:
        """Sum of line totals, recomputed from the lines every time."""
        return Money(amount=sum(line.line_total.amount for line in self.lines), currency=self.currency)

    def revise(self, **changes) -> "Cart":
        return replace(self, **changes)
