"""Customer notice port — how the engine tells a customer their order moved.

The engine decides *what* to say (``OrderNotice``); an adapter decides how it
travels (email, SMS, push). Adapters report the outcome in a
``DeliveryReceipt`` instead of raising for an undeliverable notice.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class OrderNotice:
    order_id: str
    status: str
    recipient: str
    subject: str
    body: str


@dataclass(frozen=True)
class DeliveryReceipt:
    delivered: bool
    message_id: str | None = None
    error: str | None = None


class NotificationPort(ABC):
    @abstractmethod
    def deliver(self, notice: OrderNotice) -> DeliveryReceipt:
        """Hand ``notice`` to the channel. Transport errors may still propagate."""
        ...
