"""Table-driven carrier adapter priced from the Mexican zone tables.

Used for carriers that publish zone rate cards instead of a quoting API.
"""

from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

import structlog
from protean.exceptions import ValidationError

from storefront.carrier.port import CarrierPort, ShippingLabel, TrackingEvent, TrackingInfo, TrackingStatus
from storefront.carrier.zones import zone_for_postal_code
from storefront.errors import RateUnavailableError
from storefront.shared.clock import utcnow
from storefront.shared.money import Money

logger = structlog.get_logger(__name__)


class ZoneRateCarrier(CarrierPort):
    """Quotes ``(base + extra kg * per-kg) * multiplier`` rounded to whole pesos."""

    def __init__(
        self,
        carrier: str,
        service_level: str = "Standard",
        estimated_days: int = 5,
        multiplier: Decimal | str = "1",
        tracking_prefix: str = "TRK",
        serviced_zones: set[str] | None = None,
        origin_zip: str = "06000",
    ):
        self.carrier = carrier
        self.service_level = service_level
        self.estimated_days = estimated_days
        self.multiplier = Decimal(str(multiplier))
        self.tracking_prefix = tracking_prefix
        self.serviced_zones = serviced_zones
        self.origin_zip = origin_zip
        self._labels: dict[str, dict] = {}

    async def quote_rate(self, from_zip: str, to_zip: str, weight: float) -> Money:
        if zone_for_postal_code(from_zip) is None:
            raise RateUnavailableError(self.carrier, f"origin {from_zip!r} is outside the service area")

        zone = zone_for_postal_code(to_zip)
        if zone is None:
            raise RateUnavailableError(self.carrier, f"destination {to_zip!r} is outside the service area")
        if self.serviced_zones is not None and zone.zone_id not in self.serviced_zones:
            raise RateUnavailableError(self.carrier, f"{zone.name} is not serviced")

        extra_kg = max(Decimal(str(weight)) - 1, Decimal(0))
        pesos = (zone.base_rate + extra_kg * zone.per_kg_rate) * self.multiplier
        pesos = pesos.quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return Money.from_major(pesos, "MXN")

    async def create_label(self, order) -> ShippingLabel:
        address = order.shipping_address
        postal_code = address.postal_code if address else None
        weight = order.weight or 1.0
        cost = await self.quote_rate(self.origin_zip, postal_code, weight)

        label_id = f"{self.tracking_prefix.lower()}-{uuid4().hex[:10]}"
        tracking_number = f"{self.tracking_prefix}{uuid4().hex[:12].upper()}"
        self._labels[label_id] = {"tracking_number": tracking_number, "cancelled": False, "created_at": utcnow()}
        logger.info("Label created", carrier=self.carrier, order_id=str(order.id), tracking_number=tracking_number)
        return ShippingLabel(
            label_id=label_id,
            tracking_number=tracking_number,
            label_url=f"https://labels.{self.carrier.lower().replace(' ', '')}.example.com/{label_id}.pdf",
            cost=cost,
            carrier=self.carrier,
        )

    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        label = next((lbl for lbl in self._labels.values() if lbl["tracking_number"] == tracking_number), None)
        if label is None:
            raise ValidationError({"tracking_number": [f"Unknown {self.carrier} tracking number {tracking_number}"]})

        if label["cancelled"]:
            event = TrackingEvent(TrackingStatus.EXCEPTION, "Label cancelled", label["cancelled_at"])
            return TrackingInfo(tracking_number, TrackingStatus.EXCEPTION, label["cancelled_at"], (event,))

        event = TrackingEvent(TrackingStatus.PENDING, "Label created, awaiting pickup", label["created_at"])
        return TrackingInfo(tracking_number, TrackingStatus.PENDING, label["created_at"], (event,))

    async def cancel_label(self, label_id: str) -> None:
        label = self._labels.get(label_id)
        if label is None or label["cancelled"]:
            return
        label["cancelled"] = True
        label["cancelled_at"] = utcnow()
