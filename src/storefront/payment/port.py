"""Payment provider port (abstract interface).

The engine only ever refunds: charges are captured outside it and reach the
order as an opaque ``payment_ref``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from storefront.shared.money import Money


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def refund(
        self,
        payment_ref: str,
        amount: Money,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund part or all of a captured payment.

        Repeating a call with the same ``idempotency_key`` must return the
        original result instead of refunding twice.
        """
        ...
