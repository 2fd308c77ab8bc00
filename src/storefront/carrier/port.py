"""Carrier port — abstract interface for shipping carrier integrations.

Every carrier adapter implements these four operations. The rate resolver
and checkout code program against the port only and never look at a
carrier's name to decide behaviour.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from storefront.shared.money import Money


class TrackingStatus(Enum):
    PENDING = "Pending"
    IN_TRANSIT = "In_Transit"
    DELIVERED = "Delivered"
    EXCEPTION = "Exception"


@dataclass(frozen=True)
class ShippingLabel:
    label_id: str
    tracking_number: str
    label_url: str
    cost: Money
    carrier: str


@dataclass(frozen=True)
class TrackingEvent:
    status: TrackingStatus
    description: str
    occurred_at: datetime
    location: str | None = None


@dataclass(frozen=True)
class TrackingInfo:
    tracking_number: str
    status: TrackingStatus
    last_update: datetime | None
    events: tuple[TrackingEvent, ...] = field(default_factory=tuple)


class CarrierPort(ABC):
    """Abstract interface for carrier adapters.

    Implementations expose ``carrier``, ``service_level`` and
    ``estimated_days`` attributes describing the service they quote.
    """

    carrier: str
    service_level: str
    estimated_days: int

    @abstractmethod
    async def quote_rate(self, from_zip: str, to_zip: str, weight: float) -> Money:
        """Price a parcel of ``weight`` kg between two postal codes.

        Raises:
            RateUnavailableError: the carrier cannot service the route.
        """
        ...

    @abstractmethod
    async def create_label(self, order) -> ShippingLabel:
        """Buy a shipping label for an order."""
        ...

    @abstractmethod
    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        """Current tracking status and event history for a shipment."""
        ...

    @abstractmethod
    async def cancel_label(self, label_id: str) -> None:
        """Void a label. Cancelling an already-cancelled label is a no-op."""
        ...


def carrier_key(carrier: CarrierPort) -> str:
    """Stable identity of a carrier service, used in cache keys and logs."""
    return f"{carrier.carrier}:{carrier.service_level}"
