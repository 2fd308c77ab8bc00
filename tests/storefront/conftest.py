from datetime import UTC, datetime, timedelta

import pytest
from protean.integrations.pytest import DomainFixture

from storefront.cart import Cart, CartLine
from storefront.order.order import Order, OrderPricing
from storefront.shared.address import Address
from storefront.shared.money import Money
from storefront.shipping.quote import ShippingQuote
from storefront.utils import storage


class FakeClock:
    """Deterministic, manually advanced clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def mx_address():
    return Address(street="Av. Reforma 222", city="Ciudad de México", state="CDMX", postal_code="06600", country="MX")


@pytest.fixture()
def make_cart(mx_address):
    def _make_cart(amount="1000.00", currency="MXN", quantity=1, coupon_code=None, destination=None, **extra):
        unit_price = Money.from_major(amount, currency)
        return Cart(
            lines=(CartLine(product_id="prod-001", unit_price=unit_price, quantity=quantity),),
            destination=destination if destination is not None else mx_address,
            coupon_code=coupon_code,
            customer_id=extra.pop("customer_id", "cust-001"),
            **extra,
        )

    return _make_cart


@pytest.fixture()
def make_quote(clock):
    def _make_quote(amount="50.00", currency="MXN", carrier="Estafeta", expires_in=timedelta(minutes=5)):
        return ShippingQuote(
            carrier=carrier,
            service_level="Standard",
            price=Money.from_major(amount, currency),
            estimated_days=4,
            expires_at=clock() + expires_in,
            quoted_at=clock(),
        )

    return _make_quote


@pytest.fixture()
def make_order(clock, mx_address):
    """Place and persist an order; returns the stored aggregate."""

    def _make_order(grand_total=109400, payment_ref=None, contact_email="ana@example.com", quantity=2):
        order = Order.place(
            lines=[{"product_id": "prod-001", "quantity": quantity, "unit_price": 50000}],
            pricing=OrderPricing(
                subtotal=100000,
                discount_total=10000,
                tax_total=14400,
                shipping_cost=5000,
                grand_total=grand_total,
                currency="MXN",
            ),
            actor="checkout",
            placed_at=clock(),
            customer_id="cust-001",
            contact_email=contact_email,
            shipping_address=mx_address,
            payment_ref=payment_ref,
            carrier="Estafeta",
            weight=2.0,
        )
        storage.save(order)
        return storage.load(Order, order.id)

    return _make_order
