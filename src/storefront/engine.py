"""Engine wiring — one explicit context object instead of module-level singletons.

Everything stateful (rate cache, locks, carrier list, gateway, notification
channel) is created here and handed to the services that need it, so each
caller (and each test) can hold its own isolated engine.
"""

from dataclasses import dataclass

from storefront.carrier.port import CarrierPort
from storefront.checkout.orchestrator import CheckoutService
from storefront.config import EngineSettings
from storefront.coupon.engine import CouponEngine
from storefront.notification.port import NotificationPort
from storefront.order.lifecycle import OrderLifecycle
from storefront.order.observers import CustomerNotifier, TrackingRefreshScheduler
from storefront.payment.port import PaymentGateway
from storefront.returns.service import ReturnService
from storefront.shared.clock import Clock, utcnow
from storefront.shared.locks import KeyedLock
from storefront.shipping.cache import RateCache, RateCacheSweeper
from storefront.shipping.resolver import ShippingRateResolver
from storefront.tax.engine import TaxEngine


@dataclass
class EngineContext:
    settings: EngineSettings
    tax: TaxEngine
    coupons: CouponEngine
    rate_cache: RateCache
    resolver: ShippingRateResolver
    sweeper: RateCacheSweeper
    lifecycle: OrderLifecycle
    returns: ReturnService
    checkout: CheckoutService
    tracking: TrackingRefreshScheduler

    @classmethod
    def build(
        cls,
        carriers: list[CarrierPort],
        gateway: PaymentGateway,
        notifications: NotificationPort | None = None,
        settings: EngineSettings | None = None,
        tax_rates: dict | None = None,
        clock: Clock = utcnow,
    ) -> "EngineContext":
        settings = settings or EngineSettings.from_env()
        locks = KeyedLock()

        rate_cache = RateCache(clock=clock)
        resolver = ShippingRateResolver(
            carriers,
            cache=rate_cache,
            ttl=settings.rate_ttl,
            timeout=settings.carrier_timeout_seconds,
            clock=clock,
        )

        tracking = TrackingRefreshScheduler(clock=clock)
        observers = [tracking]
        if notifications is not None:
            observers.append(CustomerNotifier(notifications))
        lifecycle = OrderLifecycle(
            observers=observers,
            locks=locks,
            max_attempts=settings.transition_attempts,
            clock=clock,
        )

        tax = TaxEngine(tax_rates)
        coupons = CouponEngine(locks=locks, clock=clock, default_currency=settings.default_currency)

        return cls(
            settings=settings,
            tax=tax,
            coupons=coupons,
            rate_cache=rate_cache,
            resolver=resolver,
            sweeper=RateCacheSweeper(rate_cache, interval=settings.sweep_interval_seconds),
            lifecycle=lifecycle,
            returns=ReturnService(lifecycle, gateway, return_window=settings.return_window, clock=clock),
            checkout=CheckoutService(tax, coupons, clock=clock),
            tracking=tracking,
        )
