"""Coupon aggregate — a merchant discount code and its redemption ledger.

Validation (``rejection_reason`` / ``discount_for``) never mutates the coupon
and is safe to run on every cart view. Redemption is recorded once per order
id, so retried checkouts cannot double-count usage.
"""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String, Text

from storefront.coupon.events import CouponCreated, CouponRedeemed
from storefront.domain import storefront
from storefront.errors import InvalidCouponError
from storefront.shared.clock import as_utc, utcnow
from storefront.shared.money import Money


class CouponType(Enum):
    PERCENTAGE = "Percentage"
    FIXED = "Fixed"


def normalize_code(code) -> str:
    return (code or "").strip().upper()


@storefront.entity(part_of="Coupon")
class CouponRedemption:
    order_id = Identifier(required=True)
    redeemed_at = DateTime()


@storefront.aggregate
class Coupon:
    code = String(required=True, max_length=50)
    coupon_type = String(required=True, choices=CouponType)
    # Percent for PERCENTAGE coupons, minor units of ``currency`` for FIXED ones.
    value = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="USD")
    min_cart_total = Integer(min_value=0)
    max_discount = Integer(min_value=0)
    starts_at = DateTime()
    expires_at = DateTime()
    usage_limit = Integer(min_value=0)
    usage_count = Integer(default=0)
    is_active = Boolean(default=True)
    first_purchase_only = Boolean(default=False)
    description = Text()
    redemptions = HasMany(CouponRedemption)
    created_at = DateTime()

    @invariant.post
    def percentage_must_not_exceed_one_hundred(self):
        if self.coupon_type == CouponType.PERCENTAGE.value and self.value is not None and self.value > 100:
            raise ValidationError({"value": ["Percentage coupons cannot exceed 100%"]})

    @invariant.post
    def code_must_not_be_blank(self):
        if not (self.code or "").strip():
            raise ValidationError({"code": ["Coupon code cannot be blank"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, code, coupon_type, value, currency="USD", created_at=None, **options):
        coupon_type = CouponType(coupon_type)
        created_at = created_at or utcnow()
        coupon = cls(
            code=normalize_code(code),
            coupon_type=coupon_type.value,
            value=value,
            currency=currency,
            usage_count=0,
            created_at=created_at,
            **options,
        )
        coupon.raise_(
            CouponCreated(
                coupon_id=str(coupon.id),
                code=coupon.code,
                coupon_type=coupon.coupon_type,
                value=coupon.value,
                created_at=created_at,
            )
        )
        return coupon

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------
    def _uses_money_fields(self) -> bool:
        return (
            self.coupon_type == CouponType.FIXED.value
            or self.min_cart_total is not None
            or self.max_discount is not None
        )

    def rejection_reason(self, subtotal: Money, now, is_first_purchase=False) -> str | None:
        """Why this coupon cannot apply to ``subtotal`` at ``now``, or None if it can."""
        if not self.is_active:
            return "is no longer available"

        starts_at = as_utc(self.starts_at)
        if starts_at is not None and now < starts_at:
            return f"is not active until {starts_at.isoformat()}"

        expires_at = as_utc(self.expires_at)
        if expires_at is not None and now > expires_at:
            return f"expired at {expires_at.isoformat()}"

        if self.usage_limit is not None and self.usage_count >= self.usage_limit:
            return f"has reached its usage limit of {self.usage_limit}"

        if self._uses_money_fields() and subtotal.currency != self.currency:
            return f"is only valid for {self.currency} carts"

        if self.min_cart_total is not None and subtotal.amount < self.min_cart_total:
            minimum = Money(amount=self.min_cart_total, currency=self.currency)
            return f"requires a minimum cart total of {minimum.format()}"

        if self.first_purchase_only and not is_first_purchase:
            return "is only valid on a first purchase"

        return None

    def discount_for(self, subtotal: Money) -> Money:
        """Discount for a pre-tax, pre-shipping subtotal. Never exceeds the subtotal."""
        if self.coupon_type == CouponType.PERCENTAGE.value:
            discount = subtotal.percentage(self.value)
            if self.max_discount is not None:
                discount = discount.minimum(Money(amount=self.max_discount, currency=subtotal.currency))
        else:
            discount = Money(amount=self.value, currency=subtotal.currency)
        return discount.minimum(subtotal)

    # -------------------------------------------------------------------
    # Redemption
    # -------------------------------------------------------------------
    def has_redeemed(self, order_id) -> bool:
        return any(str(r.order_id) == str(order_id) for r in self.redemptions)

    def redeem(self, order_id, redeemed_at=None) -> bool:
        """Record a redemption for ``order_id``.

        Returns False (and changes nothing) if the order already redeemed
        this coupon.
        """
        if self.has_redeemed(order_id):
            return False
        if self.usage_limit is not None and self.usage_count >= self.usage_limit:
            raise InvalidCouponError(self.code, f"has reached its usage limit of {self.usage_limit}")

        redeemed_at = redeemed_at or utcnow()
        self.add_redemptions(CouponRedemption(order_id=str(order_id), redeemed_at=redeemed_at))
        self.usage_count = (self.usage_count or 0) + 1

        self.raise_(
            CouponRedeemed(
                coupon_id=str(self.id),
                code=self.code,
                order_id=str(order_id),
                usage_count=self.usage_count,
                redeemed_at=redeemed_at,
            )
        )
        return True
