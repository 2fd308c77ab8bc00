"""Transition observers — side effects attached to order status changes.

The state machine itself performs no I/O; anything that should happen when
an order enters a status (customer messages, tracking refresh jobs) is an
observer registered on ``OrderLifecycle``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

import structlog

from storefront.notification.port import NotificationPort, OrderNotice
from storefront.order.order import OrderStatus
from storefront.shared.clock import Clock, utcnow

logger = structlog.get_logger(__name__)


class TransitionObserver(ABC):
    @abstractmethod
    def on_transition(self, order, change) -> None:
        """Called after ``change`` has been committed for ``order``."""
        ...


class CustomerNotifier(TransitionObserver):
    """Tells the customer about status changes they care about. Fire-and-forget."""

    SUBJECTS = {
        OrderStatus.PAID.value: "Payment received for order {order_id}",
        OrderStatus.SHIPPED.value: "Order {order_id} has shipped",
        OrderStatus.DELIVERED.value: "Order {order_id} was delivered",
        OrderStatus.CANCELLED.value: "Order {order_id} was cancelled",
        OrderStatus.REFUNDED.value: "Your refund for order {order_id} is on its way",
    }

    def __init__(self, channel: NotificationPort):
        self.channel = channel

    def on_transition(self, order, change) -> None:
        template = self.SUBJECTS.get(change.to_status)
        if template is None:
            return
        if not order.contact_email:
            logger.debug("No contact email on order, skipping notification", order_id=str(order.id))
            return

        body = f"Order {order.id} is now {change.to_status}. Total: {order.total.format()}."
        if change.reason:
            body = f"{body}\n\n{change.reason}"
        notice = OrderNotice(
            order_id=str(order.id),
            status=change.to_status,
            recipient=order.contact_email,
            subject=template.format(order_id=order.id),
            body=body,
        )

        receipt = self.channel.deliver(notice)
        if not receipt.delivered:
            logger.warning(
                "Customer notification not delivered",
                order_id=notice.order_id,
                to_status=notice.status,
                error=receipt.error,
            )


@dataclass(frozen=True)
class TrackingJob:
    order_id: str
    carrier: str | None
    scheduled_at: datetime


class TrackingRefreshScheduler(TransitionObserver):
    """Queues a tracking-update job whenever an order enters SHIPPED."""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self.jobs: list[TrackingJob] = []

    def on_transition(self, order, change) -> None:
        if change.to_status != OrderStatus.SHIPPED.value:
            return
        job = TrackingJob(order_id=str(order.id), carrier=order.carrier, scheduled_at=self.clock())
        self.jobs.append(job)
        logger.info("Tracking refresh scheduled", order_id=job.order_id, carrier=job.carrier)

    def drain(self) -> list[TrackingJob]:
        """Hand all pending jobs to the caller and empty the queue."""
        jobs, self.jobs = self.jobs, []
        return jobs
