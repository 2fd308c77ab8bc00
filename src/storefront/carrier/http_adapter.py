"""REST carrier adapter — talks to a carrier's JSON API over httpx.

Configured with a base URL and API key. Any transport error, non-2xx
response or malformed body while quoting becomes ``RateUnavailableError`` so
the rate resolver can drop this carrier and keep the others.
"""

from datetime import datetime

import httpx
import structlog
from protean.exceptions import ValidationError
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from storefront.carrier.port import CarrierPort, ShippingLabel, TrackingEvent, TrackingInfo, TrackingStatus
from storefront.errors import RateUnavailableError
from storefront.shared.money import Money

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------
class RateResponse(BaseModel):
    amount: int = Field(ge=0, description="Price in minor units")
    currency: str = Field(min_length=3, max_length=3)


class LabelResponse(BaseModel):
    label_id: str
    tracking_number: str
    label_url: str
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)


class TrackingEventPayload(BaseModel):
    status: str
    description: str = ""
    occurred_at: datetime
    location: str | None = None


class TrackingResponse(BaseModel):
    status: str
    last_update: datetime | None = None
    events: list[TrackingEventPayload] = []


_TRACKING_STATUSES = {
    "pending": TrackingStatus.PENDING,
    "label_created": TrackingStatus.PENDING,
    "in_transit": TrackingStatus.IN_TRANSIT,
    "out_for_delivery": TrackingStatus.IN_TRANSIT,
    "delivered": TrackingStatus.DELIVERED,
}


def _tracking_status(raw: str) -> TrackingStatus:
    return _TRACKING_STATUSES.get(raw.strip().lower(), TrackingStatus.EXCEPTION)


class CarrierAPIError(Exception):
    """A non-quote carrier call failed."""


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------
class HttpCarrier(CarrierPort):
    def __init__(
        self,
        carrier: str,
        base_url: str,
        api_key: str,
        service_level: str = "Standard",
        estimated_days: int = 3,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.carrier = carrier
        self.service_level = service_level
        self.estimated_days = estimated_days
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {"X-API-Key": self._api_key, "Accept": "application/json"}
        url = f"{self._base_url}{path}"
        if self._client is not None:
            return await self._client.request(method, url, headers=headers, timeout=self._timeout, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, headers=headers, timeout=self._timeout, **kwargs)

    async def quote_rate(self, from_zip: str, to_zip: str, weight: float) -> Money:
        try:
            response = await self._request(
                "POST",
                "/rates",
                json={
                    "from_zip": from_zip,
                    "to_zip": to_zip,
                    "weight": weight,
                    "service_level": self.service_level,
                },
            )
        except httpx.RequestError as exc:
            logger.warning("Carrier rate request failed", carrier=self.carrier, error=str(exc))
            raise RateUnavailableError(self.carrier, f"request failed: {exc}") from exc

        if response.status_code in (404, 422):
            raise RateUnavailableError(self.carrier, f"route {from_zip} -> {to_zip} not serviced")
        if response.status_code != 200:
            raise RateUnavailableError(self.carrier, f"rate API returned {response.status_code}")

        try:
            rate = RateResponse.model_validate(response.json())
            return Money(amount=rate.amount, currency=rate.currency.upper())
        except (SchemaError, ValidationError, ValueError) as exc:
            raise RateUnavailableError(self.carrier, f"malformed rate response: {exc}") from exc

    async def create_label(self, order) -> ShippingLabel:
        address = order.shipping_address
        response = await self._request(
            "POST",
            "/labels",
            json={
                "order_id": str(order.id),
                "service_level": self.service_level,
                "weight": order.weight,
                "to": {
                    "street": address.street if address else None,
                    "city": address.city if address else None,
                    "state": address.state if address else None,
                    "postal_code": address.postal_code if address else None,
                    "country": address.country if address else None,
                },
            },
        )
        if response.status_code not in (200, 201):
            raise CarrierAPIError(f"{self.carrier} label API returned {response.status_code}")

        label = LabelResponse.model_validate(response.json())
        return ShippingLabel(
            label_id=label.label_id,
            tracking_number=label.tracking_number,
            label_url=label.label_url,
            cost=Money(amount=label.amount, currency=label.currency.upper()),
            carrier=self.carrier,
        )

    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        response = await self._request("GET", f"/tracking/{tracking_number}")
        if response.status_code != 200:
            raise CarrierAPIError(f"{self.carrier} tracking API returned {response.status_code}")

        payload = TrackingResponse.model_validate(response.json())
        events = tuple(
            TrackingEvent(
                status=_tracking_status(event.status),
                description=event.description,
                occurred_at=event.occurred_at,
                location=event.location,
            )
            for event in payload.events
        )
        return TrackingInfo(
            tracking_number=tracking_number,
            status=_tracking_status(payload.status),
            last_update=payload.last_update,
            events=events,
        )

    async def cancel_label(self, label_id: str) -> None:
        response = await self._request("DELETE", f"/labels/{label_id}")
        # 404/409: unknown or already voided, which is the desired end state.
        if response.status_code in (200, 202, 204, 404, 409):
            return
        raise CarrierAPIError(f"{self.carrier} cancel API returned {response.status_code}")
