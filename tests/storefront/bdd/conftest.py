"""Shared BDD fixtures and step definitions for the storefront engine."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

from storefront.carrier.fake_adapter import FakeCarrier
from storefront.config import EngineSettings
from storefront.engine import EngineContext
from storefront.notification.fake_adapter import FakeNotificationAdapter
from storefront.order.order import Order, OrderStatus
from storefront.payment.fake_adapter import FakeGateway
from storefront.utils import storage


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def carriers():
    return []


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def mailbox():
    return FakeNotificationAdapter()


@pytest.fixture()
def engine(carriers, gateway, mailbox, clock):
    """Built on first use, so Given steps that only register carriers run before it."""
    return EngineContext.build(
        carriers=carriers or [FakeCarrier()],
        gateway=gateway,
        notifications=mailbox,
        settings=EngineSettings(carrier_timeout_seconds=0.2),
        clock=clock,
    )


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the payment provider declines refunds with "{reason}"'))
def _(gateway, reason):
    gateway.configure(should_succeed=False, failure_reason=reason)


@then(parsers.cfparse("the action fails with {error_type}"))
def _(error, error_type):
    assert error["exc"] is not None, "Expected the action to fail"
    assert type(error["exc"]).__name__ == error_type
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse('the failure mentions "{text}"'))
def _(error, text):
    messages = [message for values in error["exc"].messages.values() for message in values]
    assert any(text in message for message in messages), messages


@then(parsers.cfparse("the order status is {status}"))
def _(order, status):
    assert storage.load(Order, order.id).status == OrderStatus[status].value


@then("no order was created")
def _():
    assert storage.find(Order) == []
