"""In-memory notice channel that keeps every delivered notice for inspection."""

from uuid import uuid4

from storefront.notification.port import DeliveryReceipt, NotificationPort, OrderNotice


class FakeNotificationAdapter(NotificationPort):
    def __init__(self):
        self.sent: list[OrderNotice] = []
        self.should_succeed = True
        self.failure_reason = "Delivery failed"
        self.raise_on_send: Exception | None = None

    def configure(self, should_succeed: bool = True, failure_reason: str = "Delivery failed", raise_on_send=None):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_on_send = raise_on_send

    def deliver(self, notice: OrderNotice) -> DeliveryReceipt:
        if self.raise_on_send is not None:
            raise self.raise_on_send
        if not self.should_succeed:
            return DeliveryReceipt(delivered=False, error=self.failure_reason)

        self.sent.append(notice)
        return DeliveryReceipt(delivered=True, message_id=f"notice-{uuid4().hex[:12]}")

    def for_order(self, order_id) -> list[OrderNotice]:
        return [notice for notice in self.sent if notice.order_id == str(order_id)]

    def reset(self):
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Delivery failed"
        self.raise_on_send = None
