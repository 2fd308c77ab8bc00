"""Error taxonomy for the pricing and fulfillment engines.

Caller-facing failures subclass Protean's ``ValidationError`` so they carry a
``messages`` dict keyed by the offending field, with a reason the UI can show
the customer. ``RateUnavailableError`` is absorbed by the rate resolver;
``StorageError`` wraps unexpected persistence failures and is always surfaced.
"""

from protean.exceptions import ValidationError


class InvalidCouponError(ValidationError):
    """A coupon code cannot be applied to the cart."""

    def __init__(self, code, reason):
        self.code = code
        self.reason = reason
        super().__init__({"coupon_code": [f"Coupon {code!r} {reason}"]})


class IllegalTransitionError(ValidationError):
    """The requested status is not reachable from the current one."""

    def __init__(self, current, target, detail=None):
        self.current = current
        self.target = target
        message = f"Cannot transition from {current} to {target}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__({"status": [message]})


class NoRatesAvailableError(ValidationError):
    """Every configured carrier failed to quote the route."""

    def __init__(self, from_zip, to_zip, failures=None):
        self.failures = dict(failures or {})
        super().__init__({"shipping": [f"No carrier could quote shipping from {from_zip} to {to_zip}"]})


class ShippingQuoteExpiredError(ValidationError):
    """The selected shipping quote is past its expiry; the caller must re-quote."""

    def __init__(self, carrier, service_level, expires_at):
        self.carrier = carrier
        self.expires_at = expires_at
        super().__init__(
            {
                "shipping_quote": [
                    f"{carrier} {service_level} quote expired at {expires_at.isoformat()}; request new rates"
                ]
            }
        )


class RefundFailedError(ValidationError):
    """The payment provider declined a refund."""

    def __init__(self, payment_ref, reason):
        self.payment_ref = payment_ref
        self.reason = reason
        super().__init__({"refund": [f"Refund for payment {payment_ref} failed: {reason}"]})


class RateUnavailableError(Exception):
    """A single carrier cannot service a route."""

    def __init__(self, carrier, reason="route not serviced"):
        self.carrier = carrier
        self.reason = reason
        super().__init__(f"{carrier}: {reason}")


class StorageError(Exception):
    """The persistence collaborator failed."""
