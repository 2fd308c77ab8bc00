"""Return service — opens, approves, rejects and completes return requests.

Approval is all-or-nothing across two aggregates: the return moves to
APPROVED, its order moves DELIVERED → REFUNDED and the payment provider
issues the refund. Every check and the refund happen before anything is
written; both aggregates are then saved in one unit of work. A failure at
any step leaves the return and the order as they were. If the save fails
after the provider refunded, the refund id is logged at error level; a
retry reuses the ``return-{id}`` idempotency key.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import timedelta

import structlog
from protean.exceptions import ExpectedVersionError, ValidationError

from storefront.errors import IllegalTransitionError, RefundFailedError, StorageError
from storefront.order.lifecycle import OrderLifecycle
from storefront.order.order import Order, OrderStatus
from storefront.payment.port import PaymentGateway
from storefront.returns.return_request import ReturnReason, ReturnRequest, ReturnStatus
from storefront.shared.clock import Clock, utcnow
from storefront.shared.money import Money
from storefront.utils import storage

logger = structlog.get_logger(__name__)

RETURN_WINDOW = timedelta(days=30)


@dataclass(frozen=True)
class ReturnItem:
    """One order line the customer wants to send back."""

    order_line_id: str
    quantity: int
    reason: ReturnReason | str
    note: str | None = None


class ReturnService:
    def __init__(
        self,
        lifecycle: OrderLifecycle,
        gateway: PaymentGateway,
        return_window: timedelta = RETURN_WINDOW,
        clock: Clock = utcnow,
    ):
        self.lifecycle = lifecycle
        self.gateway = gateway
        self.return_window = return_window
        self.clock = clock

    # -------------------------------------------------------------------
    # Request
    # -------------------------------------------------------------------
    def _validate_items(self, order: Order, items) -> list[dict]:
        if not items:
            raise ValidationError({"lines": ["A return must include at least one item"]})

        requested = Counter()
        lines = []
        for item in items:
            order_line = order.line(item.order_line_id)
            if order_line is None:
                raise ValidationError({"lines": [f"Order {order.id} has no line {item.order_line_id}"]})
            if not isinstance(item.quantity, int) or item.quantity < 1:
                raise ValidationError({"lines": [f"Return quantity must be at least 1, got {item.quantity!r}"]})
            try:
                reason = ReturnReason(item.reason)
            except ValueError:
                raise ValidationError({"lines": [f"Unknown return reason: {item.reason!r}"]}) from None

            requested[str(order_line.id)] += item.quantity
            if requested[str(order_line.id)] > order_line.quantity:
                raise ValidationError(
                    {"lines": [f"Cannot return more than the {order_line.quantity} ordered of line {order_line.id}"]}
                )
            lines.append(
                {
                    "order_line_id": str(order_line.id),
                    "quantity": item.quantity,
                    "reason": reason.value,
                    "note": item.note,
                }
            )
        return lines

    def request_return(self, order_id, items, requested_by) -> ReturnRequest:
        """Open a return against a delivered order.

        Only one PENDING or APPROVED return may exist per order; the check
        runs under the order's write lock.
        """
        with self.lifecycle.locked(order_id):
            order = self.lifecycle.load(order_id)
            if OrderStatus(order.status) != OrderStatus.DELIVERED:
                raise ValidationError(
                    {"order_id": [f"Returns can only be requested for delivered orders; order is {order.status}"]}
                )

            now = self.clock()
            delivered_at = order.entered_at(OrderStatus.DELIVERED)
            if delivered_at is not None and now > delivered_at + self.return_window:
                closed_at = (delivered_at + self.return_window).date().isoformat()
                raise ValidationError({"order_id": [f"The return window for this order closed on {closed_at}"]})

            lines = self._validate_items(order, items)

            active = [request for request in storage.find(ReturnRequest, order_id=str(order.id)) if request.is_active]
            if active:
                raise ValidationError(
                    {"order_id": [f"Order {order.id} already has an open return request ({active[0].id})"]}
                )

            request = ReturnRequest.open(order.id, lines, requested_by=requested_by, requested_at=now)
            storage.save(request)

        logger.info("Return requested", return_id=str(request.id), order_id=str(order.id), requested_by=requested_by)
        return request

    # -------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------
    def _validate_refund(self, order: Order, refund_amount: Money) -> None:
        if refund_amount.currency != order.currency:
            raise ValidationError(
                {"refund_amount": [f"Refund must be in {order.currency}, not {refund_amount.currency}"]}
            )
        if refund_amount.is_zero():
            raise ValidationError({"refund_amount": ["Refund amount must be greater than zero"]})
        if refund_amount > order.total:
            raise ValidationError(
                {"refund_amount": [f"Refund of {refund_amount.format()} exceeds order total {order.total.format()}"]}
            )
        if not order.payment_ref:
            raise ValidationError({"payment_ref": [f"Order {order.id} has no captured payment to refund"]})

    def approve(self, return_id, refund_amount: Money, actor, reason=None) -> ReturnRequest:
        """Approve a pending return, refund the customer and mark the order REFUNDED.

        Raises:
            IllegalTransitionError: the return is not PENDING, or the order cannot
                move to REFUNDED (e.g. already refunded through another path).
            RefundFailedError: the payment provider declined the refund.
        """
        order_id = storage.load(ReturnRequest, str(return_id)).order_id

        with self.lifecycle.locked(order_id):
            request = storage.load(ReturnRequest, str(return_id))
            order = self.lifecycle.load(order_id)

            request.assert_can_transition(ReturnStatus.APPROVED)
            self._validate_refund(order, refund_amount)

            now = self.clock()
            change = order.transition_to(
                OrderStatus.REFUNDED,
                actor,
                at=now,
                reason=reason or f"Return {request.id} approved",
                return_request=request,
            )

            receipt = self.gateway.refund(
                order.payment_ref,
                refund_amount,
                reason=reason or "Customer return",
                idempotency_key=f"return-{request.id}",
            )
            if not receipt.success:
                logger.warning(
                    "Refund declined, return left pending",
                    return_id=str(request.id),
                    order_id=str(order.id),
                    reason=receipt.failure_reason,
                )
                raise RefundFailedError(order.payment_ref, receipt.failure_reason)

            request.approve(refund_amount, receipt.gateway_refund_id, actor, at=now)
            try:
                storage.save(request, order)
            except (ExpectedVersionError, StorageError) as exc:
                logger.error(
                    "Refund issued but approval not saved",
                    return_id=str(request.id),
                    order_id=str(order.id),
                    refund_id=receipt.gateway_refund_id,
                    refund_amount=refund_amount.amount,
                    currency=refund_amount.currency,
                    error=str(exc),
                )
                if isinstance(exc, StorageError):
                    raise
                raise IllegalTransitionError(
                    order.status, OrderStatus.REFUNDED.value, "the order changed concurrently; reload it and retry"
                ) from None

        logger.info(
            "Return approved",
            return_id=str(request.id),
            order_id=str(order.id),
            refund_amount=refund_amount.amount,
            currency=refund_amount.currency,
        )
        self.lifecycle.notify(order, change)
        return request

    def reject(self, return_id, rejection_reason, actor) -> ReturnRequest:
        """Reject a pending return. The order is not touched."""
        order_id = storage.load(ReturnRequest, str(return_id)).order_id

        with self.lifecycle.locked(order_id):
            request = storage.load(ReturnRequest, str(return_id))
            request.reject(rejection_reason, actor, at=self.clock())
            storage.save(request)

        logger.info("Return rejected", return_id=str(request.id), order_id=str(order_id))
        return request

    def complete(self, return_id, actor) -> ReturnRequest:
        """Mark an approved return as received back."""
        order_id = storage.load(ReturnRequest, str(return_id)).order_id

        with self.lifecycle.locked(order_id):
            request = storage.load(ReturnRequest, str(return_id))
            request.complete(actor, at=self.clock())
            storage.save(request)

        logger.info("Return completed", return_id=str(request.id), order_id=str(order_id))
        return request
