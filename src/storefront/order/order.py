"""Order aggregate — a priced cart frozen at checkout, plus its lifecycle.

After placement only the status group (status, payment reference, history)
changes. Every status change appends a ``StatusChange`` entry; entries are
never edited or removed.

State Machine:
    PENDING → PROCESSING → PAID → SHIPPED → DELIVERED
    CANCELLED from PENDING, PROCESSING, PAID
    REFUNDED from PAID, SHIPPED, and DELIVERED (approved return only)
    CANCELLED and REFUNDED are terminal.
"""

from datetime import timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from storefront.domain import storefront
from storefront.errors import IllegalTransitionError
from storefront.order.events import OrderPlaced, OrderStatusChanged
from storefront.shared.address import Address
from storefront.shared.clock import as_utc, utcnow
from storefront.shared.money import Money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    PAID = "Paid"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),  # Approved return only
    OrderStatus.CANCELLED: frozenset(),  # Terminal
    OrderStatus.REFUNDED: frozenset(),  # Terminal
}


def coerce_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value!r}"]}) from None


def allowed_transitions(status) -> frozenset:
    return _VALID_TRANSITIONS[coerce_status(status)]


def is_terminal(status) -> bool:
    return not allowed_transitions(status)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class OrderPricing:
    """Money summary locked at checkout, in minor units of ``currency``.

    ``grand_total = subtotal - discount_total + tax_total + shipping_cost``
    """

    subtotal = Integer(default=0, min_value=0)
    discount_total = Integer(default=0, min_value=0)
    tax_total = Integer(default=0, min_value=0)
    shipping_cost = Integer(default=0, min_value=0)
    grand_total = Integer(default=0, min_value=0)
    currency = String(max_length=3, default="USD")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@storefront.entity(part_of="Order")
class StatusChange:
    """One append-only entry in an order's status history."""

    sequence = Integer(required=True, min_value=1)
    from_status = String(max_length=20)  # None for the initial placement entry
    to_status = String(required=True, max_length=20)
    actor = String(required=True, max_length=100)
    reason = Text()
    return_request_id = Identifier()
    changed_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    customer_id = Identifier()
    contact_email = String(max_length=255)
    lines = HasMany(OrderLine)
    shipping_address = ValueObject(Address)
    pricing = ValueObject(OrderPricing)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusChange)
    coupon_code = String(max_length=50)
    payment_ref = String(max_length=255)
    carrier = String(max_length=100)
    service_level = String(max_length=50)
    weight = Float(min_value=0.0)
    placed_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, lines, pricing, actor, placed_at=None, order_id=None, **attributes):
        """Create an order in PENDING from priced cart data.

        Args:
            lines: Iterable of dicts with product_id, quantity, unit_price (minor units).
            pricing: OrderPricing locked at checkout.
            actor: Who placed the order; recorded in the first history entry.
            order_id: Optional caller-chosen identity (used for retry-safe checkout).
        """
        placed_at = placed_at or utcnow()
        if order_id is not None:
            attributes["id"] = str(order_id)

        order = cls(
            pricing=pricing,
            status=OrderStatus.PENDING.value,
            placed_at=placed_at,
            updated_at=placed_at,
            **attributes,
        )
        for line in lines:
            order.add_lines(OrderLine(**line))

        order.add_status_history(
            StatusChange(
                sequence=1,
                from_status=None,
                to_status=OrderStatus.PENDING.value,
                actor=actor,
                reason="Order placed",
                changed_at=placed_at,
            )
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(order.customer_id) if order.customer_id else None,
                subtotal=pricing.subtotal,
                discount_total=pricing.discount_total,
                tax_total=pricing.tax_total,
                shipping_cost=pricing.shipping_cost,
                grand_total=pricing.grand_total,
                currency=pricing.currency,
                coupon_code=order.coupon_code,
                placed_at=placed_at,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Money accessors
    # -------------------------------------------------------------------
    def _money(self, amount) -> Money:
        return Money(amount=amount or 0, currency=self.pricing.currency)

    @property
    def currency(self) -> str:
        return self.pricing.currency

    @property
    def subtotal(self) -> Money:
        return self._money(self.pricing.subtotal)

    @property
    def discount(self) -> Money:
        return self._money(self.pricing.discount_total)

    @property
    def tax(self) -> Money:
        return self._money(self.pricing.tax_total)

    @property
    def shipping_cost(self) -> Money:
        return self._money(self.pricing.shipping_cost)

    @property
    def total(self) -> Money:
        return self._money(self.pricing.grand_total)

    def line(self, line_id):
        return next((line for line in self.lines if str(line.id) == str(line_id)), None)

    # -------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------
    @property
    def history(self) -> list:
        """Status history, oldest first."""
        return sorted(self.status_history, key=lambda entry: entry.sequence)

    def entered_at(self, status):
        """When the order most recently entered ``status``, or None."""
        target = coerce_status(status).value
        entries = [entry for entry in self.history if entry.to_status == target]
        return as_utc(entries[-1].changed_at) if entries else None

    def _next_timestamp(self, at):
        history = self.history
        if not history:
            return at
        last = as_utc(history[-1].changed_at)
        return at if at > last else last + timedelta(microseconds=1)

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def assert_can_transition(self, target, return_request=None):
        current = OrderStatus(self.status)
        target = coerce_status(target)

        if target == current:
            raise IllegalTransitionError(current.value, target.value, "order is already in this status")
        if target not in _VALID_TRANSITIONS[current]:
            detail = f"{current.value} is terminal" if is_terminal(current) else None
            raise IllegalTransitionError(current.value, target.value, detail)
        if current == OrderStatus.DELIVERED and target == OrderStatus.REFUNDED:
            if return_request is None or str(return_request.order_id) != str(self.id) or not return_request.is_active:
                raise IllegalTransitionError(
                    current.value, target.value, "a delivered order can only be refunded through an approved return"
                )

    def transition_to(self, new_status, actor, at=None, reason=None, payment_ref=None, return_request=None):
        """Move to ``new_status`` and append a history entry.

        Pure state change, no I/O. Returns the appended ``StatusChange``.

        ``return_request`` is the open ``ReturnRequest`` being approved; a
        delivered order cannot be refunded without one for this order.

        Raises:
            IllegalTransitionError: ``new_status`` is not reachable from the current status.
        """
        target = coerce_status(new_status)
        self.assert_can_transition(target, return_request=return_request)
        if not actor or not str(actor).strip():
            raise ValidationError({"actor": ["A status change must name its actor"]})

        current = OrderStatus(self.status)
        changed_at = self._next_timestamp(at or utcnow())
        history = self.history

        entry = StatusChange(
            sequence=(history[-1].sequence + 1) if history else 1,
            from_status=current.value,
            to_status=target.value,
            actor=str(actor),
            reason=reason,
            return_request_id=str(return_request.id) if return_request is not None else None,
            changed_at=changed_at,
        )
        self.add_status_history(entry)
        self.status = target.value
        if payment_ref:
            self.payment_ref = payment_ref
        self.updated_at = changed_at

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                from_status=current.value,
                to_status=target.value,
                actor=str(actor),
                reason=reason,
                return_request_id=entry.return_request_id,
                changed_at=changed_at,
            )
        )
        return entry
