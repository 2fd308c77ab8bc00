"""Checkout orchestrator — turns a priced cart and a chosen shipping quote into an order.

Sequence:
    1. subtotal recomputed from the cart lines
    2. coupon validated (an invalid coupon aborts checkout)
    3. tax on subtotal - discount
    4. shipping cost from the selected quote (an expired quote aborts checkout)
    5. total = subtotal - discount + tax + shipping
    6. order created in PENDING and saved (the commit point)
    7. coupon redeemed for the order id

Steps 1-5 are pure. Nothing is written before step 6, so an abandoned or
failed checkout leaves no state behind. A redemption failure at step 7 is
logged and the order stands.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from storefront.cart import Cart
from storefront.coupon.engine import AppliedCoupon, CouponContext, CouponEngine
from storefront.errors import ShippingQuoteExpiredError, StorageError
from storefront.order.order import Order, OrderPricing
from storefront.shared.clock import Clock, utcnow
from storefront.shared.money import Money
from storefront.shipping.quote import ShippingQuote
from storefront.tax.engine import TaxEngine
from storefront.utils import storage

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PricedCart:
    subtotal: Money
    discount: Money
    tax: Money
    shipping_cost: Money
    total: Money
    applied_coupon: AppliedCoupon | None = None

    def as_pricing(self) -> OrderPricing:
        return OrderPricing(
            subtotal=self.subtotal.amount,
            discount_total=self.discount.amount,
            tax_total=self.tax.amount,
            shipping_cost=self.shipping_cost.amount,
            grand_total=self.total.amount,
            currency=self.total.currency,
        )


class CheckoutService:
    def __init__(self, tax_engine: TaxEngine, coupon_engine: CouponEngine, clock: Clock = utcnow):
        self.tax_engine = tax_engine
        self.coupon_engine = coupon_engine
        self.clock = clock

    def price(
        self, cart: Cart, selected_quote: ShippingQuote, coupon_context: CouponContext | None = None
    ) -> PricedCart:
        """Price a cart without persisting anything."""
        now = self.clock()
        subtotal = cart.subtotal

        applied = None
        discount = Money.zero(subtotal.currency)
        if cart.coupon_code:
            context = coupon_context or CouponContext(
                now=now,
                customer_id=cart.customer_id,
                is_first_purchase=self.is_first_purchase(cart.customer_id),
            )
            applied = self.coupon_engine.apply_coupon(cart.coupon_code, subtotal, context)
            discount = applied.discount

        tax = self.tax_engine.compute_tax(cart, cart.destination, discount=discount)

        if selected_quote.is_expired(now):
            raise ShippingQuoteExpiredError(
                selected_quote.carrier, selected_quote.service_level, selected_quote.expires_at
            )
        shipping_cost = selected_quote.price
        if shipping_cost.currency != subtotal.currency:
            raise ValidationError(
                {
                    "shipping_quote": [
                        f"{selected_quote.carrier} quoted in {shipping_cost.currency} "
                        f"but the cart is in {subtotal.currency}"
                    ]
                }
            )

        total = subtotal.clamped_subtract(discount).add(tax).add(shipping_cost)
        return PricedCart(
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            shipping_cost=shipping_cost,
            total=total,
            applied_coupon=applied,
        )

    def is_first_purchase(self, customer_id) -> bool:
        """True when a known customer has never placed an order. Guests never qualify."""
        if not customer_id:
            return False
        return not storage.find(Order, customer_id=str(customer_id))

    def checkout(
        self,
        cart: Cart,
        selected_quote: ShippingQuote,
        actor,
        order_id=None,
        coupon_context: CouponContext | None = None,
    ) -> Order:
        """Create an order from ``cart``.

        Passing the same ``order_id`` again (e.g. a client retry after a
        timeout) returns the existing order instead of creating another.
        """
        if order_id is not None and storage.exists(Order, str(order_id)):
            order = storage.load(Order, str(order_id))
            logger.info("Checkout retried for existing order", order_id=str(order.id))
            self._redeem_coupon(order)
            return order

        priced = self.price(cart, selected_quote, coupon_context)

        order = Order.place(
            lines=[
                {
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price.amount,
                }
                for line in cart.lines
            ],
            pricing=priced.as_pricing(),
            actor=actor,
            placed_at=self.clock(),
            order_id=order_id,
            customer_id=cart.customer_id,
            contact_email=cart.contact_email,
            shipping_address=cart.destination,
            coupon_code=priced.applied_coupon.coupon.code if priced.applied_coupon else None,
            payment_ref=cart.payment_ref,
            carrier=selected_quote.carrier,
            service_level=selected_quote.service_level,
            weight=cart.weight,
        )
        storage.save(order)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            customer_id=cart.customer_id,
            grand_total=priced.total.amount,
            currency=priced.total.currency,
            coupon_code=order.coupon_code,
        )

        self._redeem_coupon(order)
        return order

    def _redeem_coupon(self, order: Order) -> None:
        if not order.coupon_code:
            return
        try:
            self.coupon_engine.redeem(order.coupon_code, order.id)
        except (ValidationError, StorageError, ObjectNotFoundError, ExpectedVersionError) as exc:
            logger.error(
                "Coupon redemption failed after order was placed",
                order_id=str(order.id),
                coupon_code=order.coupon_code,
                error=str(exc),
            )
