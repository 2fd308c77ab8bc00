"""Configurable fake payment gateway for development and testing.

Simulates refunds without external calls. Honors idempotency keys the way
real gateways do: a repeated key replays the first result.
"""

from uuid import uuid4

from storefront.payment.port import PaymentGateway, RefundResult
from storefront.shared.money import Money


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Refund declined"
        self.calls: list[dict] = []
        self._results: dict[str, RefundResult] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Refund declined") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def refund(
        self,
        payment_ref: str,
        amount: Money,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "payment_ref": payment_ref,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )

        if idempotency_key in self._results:
            return self._results[idempotency_key]

        if not self.should_succeed:
            return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

        result = RefundResult(
            success=True,
            gateway_refund_id=f"fake_ref_{uuid4().hex[:12]}",
            gateway_status="succeeded",
        )
        self._results[idempotency_key] = result
        return result
