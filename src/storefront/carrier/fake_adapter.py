"""Fake carrier adapter — deterministic carrier for testing and development.

Quotes a fixed price, issues mock labels and tracking numbers, and can be
configured to fail or to respond slowly.
"""

import asyncio
from uuid import uuid4

from storefront.carrier.port import CarrierPort, ShippingLabel, TrackingEvent, TrackingInfo, TrackingStatus
from storefront.errors import RateUnavailableError
from storefront.shared.clock import utcnow
from storefront.shared.money import Money


class FakeCarrier(CarrierPort):
    """Fake carrier that always quotes its configured price by default."""

    def __init__(
        self,
        carrier: str = "FakeCarrier",
        service_level: str = "Standard",
        price: Money | None = None,
        estimated_days: int = 5,
        delay: float = 0.0,
    ):
        self.carrier = carrier
        self.service_level = service_level
        self.estimated_days = estimated_days
        self.price = price or Money(amount=5000, currency="MXN")
        self.delay = delay
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.quote_calls: list[dict] = []
        self.labels: dict[str, dict] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Carrier unavailable",
        price: Money | None = None,
        delay: float | None = None,
    ):
        """Configure the fake carrier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        if price is not None:
            self.price = price
        if delay is not None:
            self.delay = delay

    async def quote_rate(self, from_zip: str, to_zip: str, weight: float) -> Money:
        self.quote_calls.append({"from_zip": from_zip, "to_zip": to_zip, "weight": weight})
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.should_succeed:
            raise RateUnavailableError(self.carrier, self.failure_reason)
        return self.price

    async def create_label(self, order) -> ShippingLabel:
        if not self.should_succeed:
            raise RateUnavailableError(self.carrier, self.failure_reason)

        label_id = f"lbl-{uuid4().hex[:8]}"
        tracking_number = f"FAKE-{uuid4().hex[:12].upper()}"
        self.labels[label_id] = {
            "order_id": str(order.id),
            "tracking_number": tracking_number,
            "created_at": utcnow(),
            "cancelled": False,
        }
        return ShippingLabel(
            label_id=label_id,
            tracking_number=tracking_number,
            label_url=f"https://fake-carrier.example.com/labels/{label_id}.pdf",
            cost=self.price,
            carrier=self.carrier,
        )

    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        now = utcnow()
        label = next((lbl for lbl in self.labels.values() if lbl["tracking_number"] == tracking_number), None)
        if label is not None and label["cancelled"]:
            event = TrackingEvent(status=TrackingStatus.EXCEPTION, description="Label cancelled", occurred_at=now)
            return TrackingInfo(tracking_number, TrackingStatus.EXCEPTION, now, (event,))

        events = (
            TrackingEvent(
                status=TrackingStatus.PENDING,
                description="Label created",
                occurred_at=label["created_at"] if label else now,
                location="Warehouse",
            ),
            TrackingEvent(
                status=TrackingStatus.IN_TRANSIT,
                description="Package in transit",
                occurred_at=now,
                location="Distribution Center",
            ),
        )
        return TrackingInfo(tracking_number, TrackingStatus.IN_TRANSIT, now, events)

    async def cancel_label(self, label_id: str) -> None:
        label = self.labels.get(label_id)
        if label is not None:
            label["cancelled"] = True
