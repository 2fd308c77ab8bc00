"""BDD tests for returns and refunds."""

from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, scenarios, then, when

from storefront.order.order import OrderStatus
from storefront.returns.return_request import ReturnRequest, ReturnStatus
from storefront.returns.service import ReturnItem
from storefront.shared.money import Money
from storefront.utils import storage

scenarios("features/returns.feature")


def mxn(major):
    return Money.from_major(major, "MXN")


def _request_return(engine, order, quantity, reason):
    return engine.returns.request_return(
        order.id, [ReturnItem(order.lines[0].id, quantity, reason)], requested_by="cust-001"
    )


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a delivered order paid with "{payment_ref}"'), target_fixture="order")
def _(engine, make_order, payment_ref):
    order = make_order(payment_ref=payment_ref)
    for status in (OrderStatus.PROCESSING, OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        order = engine.lifecycle.transition(order.id, status, actor="ops")
    return order


@given(
    parsers.cfparse('the customer requests a return of {quantity:d} item because "{reason}"'),
    target_fixture="return_request",
)
def _(engine, order, quantity, reason):
    return _request_return(engine, order, quantity, reason)


@given("the return is approved for the order total")
def _(engine, order, return_request):
    engine.returns.approve(return_request.id, order.total, actor="agent-7")


@given(parsers.cfparse("{days:d} days have passed since delivery"))
def _(clock, days):
    clock.advance(days=days)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the return is approved for the order total")
def _(engine, order, return_request, error):
    try:
        engine.returns.approve(return_request.id, order.total, actor="agent-7")
    except ValidationError as exc:
        error["exc"] = exc


@when(parsers.cfparse('the customer requests a return of {quantity:d} item because "{reason}"'))
def _(engine, order, error, quantity, reason):
    try:
        _request_return(engine, order, quantity, reason)
    except ValidationError as exc:
        error["exc"] = exc


@when(parsers.cfparse('the return is rejected because "{reason}"'))
def _(engine, return_request, reason):
    engine.returns.reject(return_request.id, reason, actor="agent-7")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the return status is {status}"))
def _(return_request, status):
    assert storage.load(ReturnRequest, return_request.id).status == ReturnStatus(status).value


@then(parsers.cfparse("the customer was refunded {amount} MXN"))
def _(gateway, amount):
    assert [call["amount"] for call in gateway.calls] == [mxn(amount)]


@then("the customer was refunded exactly once")
def _(gateway):
    assert len(gateway.calls) == 1


@then("the customer was notified about the refund")
def _(mailbox, order):
    assert any(notice.status == "Refunded" for notice in mailbox.for_order(order.id))
