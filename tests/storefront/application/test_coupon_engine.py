"""Tests for CouponEngine: lookup, application and idempotent redemption."""

from datetime import timedelta

import pytest
from protean.exceptions import ValidationError

from storefront.coupon.coupon import Coupon, CouponType
from storefront.coupon.engine import CouponContext, CouponEngine
from storefront.errors import InvalidCouponError
from storefront.shared.locks import KeyedLock
from storefront.shared.money import Money
from storefront.utils import storage


@pytest.fixture()
def engine(clock):
    return CouponEngine(clock=clock)


def _mxn(amount):
    return Money(amount=amount, currency="MXN")


class TestCreateAndLookup:
    def test_create_persists_normalized_code(self, engine):
        engine.create_coupon("bienvenido10", CouponType.PERCENTAGE, 10, currency="MXN")

        coupon = engine.lookup("BIENVENIDO10")
        assert coupon is not None
        assert coupon.code == "BIENVENIDO10"
        assert storage.load(Coupon, coupon.id).value == 10

    def test_lookup_is_case_insensitive(self, engine):
        engine.create_coupon("VERANO", CouponType.FIXED, 20000, currency="MXN")
        assert engine.lookup("  verano ").code == "VERANO"

    def test_lookup_of_unknown_or_blank_code(self, engine):
        assert engine.lookup("NOPE") is None
        assert engine.lookup("") is None
        assert engine.lookup(None) is None

    def test_injected_lock_registry_is_kept(self, clock):
        shared = KeyedLock()
        assert CouponEngine(locks=shared, clock=clock).locks is shared

    def test_duplicate_code_rejected(self, engine):
        engine.create_coupon("DUP", CouponType.FIXED, 100, currency="MXN")
        with pytest.raises(ValidationError):
            engine.create_coupon("dup", CouponType.PERCENTAGE, 5)


class TestApplyCoupon:
    def test_percentage_discount(self, engine):
        engine.create_coupon("BIENVENIDO10", CouponType.PERCENTAGE, 10, currency="MXN")

        applied = engine.apply_coupon("bienvenido10", _mxn(100000))

        assert applied.discount == _mxn(10000)
        assert applied.coupon.code == "BIENVENIDO10"

    def test_expired_coupon_rejected(self, engine, clock):
        engine.create_coupon("EXPIRED5", CouponType.PERCENTAGE, 5, expires_at=clock() - timedelta(days=1))

        with pytest.raises(InvalidCouponError) as exc:
            engine.apply_coupon("EXPIRED5", _mxn(100000))

        assert exc.value.messages["coupon_code"][0].startswith("Coupon 'EXPIRED5' expired at")

    def test_unknown_coupon_rejected(self, engine):
        with pytest.raises(InvalidCouponError) as exc:
            engine.apply_coupon("GHOST", _mxn(100000))
        assert exc.value.reason == "was not found"

    def test_context_time_overrides_clock(self, engine, clock):
        engine.create_coupon("FLASH", CouponType.PERCENTAGE, 20, expires_at=clock() + timedelta(hours=1))
        with pytest.raises(InvalidCouponError):
            engine.apply_coupon("FLASH", _mxn(100000), CouponContext(now=clock() + timedelta(hours=2)))

    def test_first_purchase_rule_uses_context(self, engine):
        engine.create_coupon("PRIMERA", CouponType.FIXED, 5000, currency="MXN", first_purchase_only=True)

        with pytest.raises(InvalidCouponError):
            engine.apply_coupon("PRIMERA", _mxn(100000))
        applied = engine.apply_coupon("PRIMERA", _mxn(100000), CouponContext(is_first_purchase=True))
        assert applied.discount == _mxn(5000)

    def test_apply_does_not_count_usage(self, engine):
        engine.create_coupon("ONCE", CouponType.PERCENTAGE, 10, usage_limit=1)
        for _ in range(3):
            engine.apply_coupon("ONCE", _mxn(100000))
        assert engine.lookup("ONCE").usage_count == 0


class TestRedeem:
    def test_redeem_is_idempotent_per_order(self, engine):
        engine.create_coupon("SAVE10", CouponType.PERCENTAGE, 10)

        assert engine.redeem("SAVE10", "order-1") is True
        assert engine.redeem("save10", "order-1") is False
        assert engine.redeem("SAVE10", "order-2") is True

        coupon = engine.lookup("SAVE10")
        assert coupon.usage_count == 2
        assert coupon.has_redeemed("order-1")
        assert coupon.has_redeemed("order-2")

    def test_usage_limit_enforced_on_redeem(self, engine):
        engine.create_coupon("LIMITED", CouponType.PERCENTAGE, 10, usage_limit=1)
        engine.redeem("LIMITED", "order-1")

        with pytest.raises(InvalidCouponError):
            engine.redeem("LIMITED", "order-2")
        with pytest.raises(InvalidCouponError):
            engine.apply_coupon("LIMITED", _mxn(100000))

    def test_redeem_unknown_coupon(self, engine):
        with pytest.raises(InvalidCouponError):
            engine.redeem("GHOST", "order-1")
