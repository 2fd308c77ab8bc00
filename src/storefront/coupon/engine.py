"""Coupon engine — validates discount codes against a cart and records redemptions."""

from dataclasses import dataclass
from datetime import datetime

import structlog
from protean.exceptions import ValidationError

from storefront.coupon.coupon import Coupon, normalize_code
from storefront.errors import InvalidCouponError
from storefront.shared.clock import Clock, utcnow
from storefront.shared.locks import KeyedLock
from storefront.shared.money import Money
from storefront.utils import storage

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CouponContext:
    """Caller-supplied facts a coupon rule may depend on."""

    now: datetime | None = None
    customer_id: str | None = None
    is_first_purchase: bool = False


@dataclass(frozen=True)
class AppliedCoupon:
    discount: Money
    coupon: Coupon


class CouponEngine:
    def __init__(self, locks: KeyedLock | None = None, clock: Clock = utcnow, default_currency: str = "USD"):
        self.locks = locks if locks is not None else KeyedLock()
        self.clock = clock
        self.default_currency = default_currency

    def lookup(self, code) -> Coupon | None:
        """Case-insensitive lookup by code."""
        normalized = normalize_code(code)
        if not normalized:
            return None
        matches = storage.find(Coupon, code=normalized)
        return matches[0] if matches else None

    def create_coupon(self, code, coupon_type, value, **options) -> Coupon:
        """Create and persist a coupon. Money fields default to the engine currency."""
        if self.lookup(code) is not None:
            raise ValidationError({"code": [f"Coupon {normalize_code(code)!r} already exists"]})
        options.setdefault("currency", self.default_currency)
        coupon = Coupon.create(code, coupon_type, value, created_at=self.clock(), **options)
        storage.save(coupon)
        logger.info("Coupon created", code=coupon.code, coupon_type=coupon.coupon_type, value=coupon.value)
        return coupon

    def apply_coupon(self, code, cart_subtotal: Money, context: CouponContext | None = None) -> AppliedCoupon:
        """Validate ``code`` for ``cart_subtotal`` and compute the discount.

        Never mutates the coupon. Raises ``InvalidCouponError`` naming the rule
        that failed.
        """
        context = context or CouponContext()
        coupon = self.lookup(code)
        if coupon is None:
            raise InvalidCouponError(normalize_code(code) or code, "was not found")

        now = context.now or self.clock()
        reason = coupon.rejection_reason(cart_subtotal, now, is_first_purchase=context.is_first_purchase)
        if reason is not None:
            raise InvalidCouponError(coupon.code, reason)

        return AppliedCoupon(discount=coupon.discount_for(cart_subtotal), coupon=coupon)

    def redeem(self, code, order_id) -> bool:
        """Count one use of ``code`` for ``order_id``.

        Idempotent per order id: a repeated call returns False and leaves
        ``usage_count`` untouched.
        """
        normalized = normalize_code(code)
        with self.locks.hold(f"coupon:{normalized}"):
            coupon = self.lookup(normalized)
            if coupon is None:
                raise InvalidCouponError(normalized, "was not found")

            redeemed = coupon.redeem(order_id, redeemed_at=self.clock())
            if not redeemed:
                logger.info("Coupon already redeemed for order", code=normalized, order_id=str(order_id))
                return False

            storage.save(coupon)
            logger.info("Coupon redeemed", code=normalized, order_id=str(order_id), usage_count=coupon.usage_count)
            return True
