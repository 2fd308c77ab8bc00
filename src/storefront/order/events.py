"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """Checkout priced a cart and created an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier()
    subtotal = Integer(required=True)
    discount_total = Integer(required=True)
    tax_total = Integer(required=True)
    shipping_cost = Integer(required=True)
    grand_total = Integer(required=True)
    currency = String(required=True, max_length=3)
    coupon_code = String()
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderStatusChanged:
    """The order moved from one lifecycle status to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    actor = String(required=True)
    reason = Text()
    return_request_id = Identifier()
    changed_at = DateTime(required=True)
