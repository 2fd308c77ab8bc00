"""Shipping rate resolver — fans a rate request out to every carrier.

Each carrier is quoted concurrently with its own timeout; the resolver waits
for all of them to settle before answering. A carrier that times out or
cannot service the route is dropped from the result. Only when every carrier
fails does the comparison itself fail.
"""

import asyncio
import math
from datetime import timedelta

import structlog
from protean.exceptions import ValidationError

from storefront.carrier.port import CarrierPort, carrier_key
from storefront.errors import NoRatesAvailableError, RateUnavailableError
from storefront.shared.clock import Clock, utcnow
from storefront.shipping.cache import RateCache
from storefront.shipping.quote import ShippingQuote

logger = structlog.get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=5)
DEFAULT_TIMEOUT = 3.0


def weight_bucket(weight: float) -> int:
    """Quantize a weight (kg) to whole kilograms, rounding up."""
    return math.ceil(weight)


class ShippingRateResolver:
    def __init__(
        self,
        carriers: list[CarrierPort],
        cache: RateCache | None = None,
        ttl: timedelta = DEFAULT_TTL,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Clock = utcnow,
    ):
        if not carriers:
            raise ValidationError({"carriers": ["At least one carrier must be configured"]})
        self.carriers = list(carriers)
        self.cache = cache if cache is not None else RateCache(clock=clock)
        self.ttl = ttl
        self.timeout = timeout
        self.clock = clock

    @staticmethod
    def _validate(from_zip, to_zip, weight) -> None:
        errors = {}
        if not isinstance(from_zip, str) or not from_zip.strip():
            errors["from_zip"] = ["Origin postal code is required"]
        if not isinstance(to_zip, str) or not to_zip.strip():
            errors["to_zip"] = ["Destination postal code is required"]
        if (
            isinstance(weight, bool)
            or not isinstance(weight, (int, float))
            or not math.isfinite(weight)
            or weight <= 0
        ):
            errors["weight"] = [f"Weight must be a positive number of kilograms, got {weight!r}"]
        if errors:
            raise ValidationError(errors)

    async def compare_rates(self, from_zip: str, to_zip: str, weight: float) -> list[ShippingQuote]:
        """Live quotes from every carrier that could price the route, cheapest first."""
        self._validate(from_zip, to_zip, weight)
        from_zip, to_zip = from_zip.strip(), to_zip.strip()
        bucket = weight_bucket(weight)

        outcomes = await asyncio.gather(
            *(self._quote(carrier, from_zip, to_zip, bucket) for carrier in self.carriers)
        )

        quotes = []
        failures = {}
        for carrier, outcome in zip(self.carriers, outcomes, strict=True):
            if isinstance(outcome, ShippingQuote):
                quotes.append(outcome)
            else:
                failures[carrier_key(carrier)] = outcome

        if not quotes:
            logger.warning("No carrier could quote route", from_zip=from_zip, to_zip=to_zip, failures=failures)
            raise NoRatesAvailableError(from_zip, to_zip, failures)

        return sorted(quotes, key=lambda q: (q.price.currency, q.price.amount, q.estimated_days, q.carrier))

    async def _quote(self, carrier: CarrierPort, from_zip: str, to_zip: str, bucket: int) -> ShippingQuote | str:
        """A live quote for one carrier, or the reason it could not be quoted."""
        key = (carrier_key(carrier), from_zip, to_zip, bucket)
        cached = self.cache.get(key, self.clock())
        if cached is not None:
            return cached

        try:
            price = await asyncio.wait_for(carrier.quote_rate(from_zip, to_zip, float(bucket)), timeout=self.timeout)
        except TimeoutError:
            logger.warning("Carrier quote timed out", carrier=key[0], timeout=self.timeout)
            return f"timed out after {self.timeout}s"
        except RateUnavailableError as exc:
            logger.warning("Carrier rate unavailable", carrier=key[0], reason=exc.reason)
            return exc.reason
        except Exception as exc:
            logger.error("Carrier quote failed unexpectedly", carrier=key[0], error=str(exc), exc_info=True)
            return f"unexpected error: {exc}"

        quoted_at = self.clock()
        quote = ShippingQuote(
            carrier=carrier.carrier,
            service_level=carrier.service_level,
            price=price,
            estimated_days=carrier.estimated_days,
            expires_at=quoted_at + self.ttl,
            quoted_at=quoted_at,
        )
        self.cache.put(key, quote)
        return quote
