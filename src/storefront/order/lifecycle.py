"""Order lifecycle service — applies status transitions one writer at a time.

Each transition re-reads the order under a per-order lock, checks legality
against the freshly loaded status, and persists. If storage reports a
version conflict (another process won the race), the order is re-read and
the transition re-evaluated, up to ``max_attempts`` times. Observers run
after the change is committed, and their failures never undo it.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from protean.exceptions import ExpectedVersionError

from storefront.errors import IllegalTransitionError
from storefront.order.order import Order, coerce_status
from storefront.shared.clock import Clock, utcnow
from storefront.shared.locks import KeyedLock
from storefront.utils import storage

logger = structlog.get_logger(__name__)


class OrderLifecycle:
    def __init__(
        self,
        observers: list | None = None,
        locks: KeyedLock | None = None,
        max_attempts: int = 3,
        clock: Clock = utcnow,
    ):
        self.observers = list(observers or [])
        self.locks = locks if locks is not None else KeyedLock()
        self.max_attempts = max_attempts
        self.clock = clock

    def register(self, observer) -> None:
        self.observers.append(observer)

    @contextmanager
    def locked(self, order_id) -> Iterator[None]:
        """Hold the per-order write lock."""
        with self.locks.hold(f"order:{order_id}"):
            yield

    def load(self, order_id) -> Order:
        return storage.load(Order, str(order_id))

    def transition(
        self,
        order_or_id,
        new_status,
        actor,
        reason=None,
        payment_ref=None,
    ) -> Order:
        """Move an order to ``new_status`` and return the persisted order.

        Raises:
            IllegalTransitionError: not reachable from the order's current status.
                A delivered order is refunded only by ``ReturnService.approve``.
            ObjectNotFoundError: no such order.
        """
        order_id = str(getattr(order_or_id, "id", order_or_id))
        target = coerce_status(new_status)

        with self.locked(order_id):
            for attempt in range(1, self.max_attempts + 1):
                order = self.load(order_id)
                change = order.transition_to(
                    target,
                    actor,
                    at=self.clock(),
                    reason=reason,
                    payment_ref=payment_ref,
                )
                try:
                    storage.save(order)
                except ExpectedVersionError:
                    logger.warning(
                        "Concurrent order update, re-evaluating transition",
                        order_id=order_id,
                        to_status=target.value,
                        attempt=attempt,
                    )
                    continue
                break
            else:
                raise IllegalTransitionError(
                    order.status, target.value, "the order kept changing concurrently; reload it and retry"
                )

        logger.info(
            "Order status changed",
            order_id=order_id,
            from_status=change.from_status,
            to_status=change.to_status,
            actor=change.actor,
        )
        self.notify(order, change)
        return order

    def notify(self, order: Order, change) -> None:
        """Run every observer for a committed change. Failures are logged only."""
        for observer in self.observers:
            try:
                observer.on_transition(order, change)
            except Exception as exc:
                logger.error(
                    "Transition observer failed",
                    observer=type(observer).__name__,
                    order_id=str(order.id),
                    to_status=change.to_status,
                    error=str(exc),
                )
