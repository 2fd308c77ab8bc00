"""ReturnRequest aggregate — a customer's request to send back delivered items.

State Machine:
    PENDING → APPROVED → COMPLETED
    PENDING → REJECTED
    REJECTED and COMPLETED are terminal.

The request references its order by id only; it never owns or embeds it.
"""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from storefront.domain import storefront
from storefront.errors import IllegalTransitionError
from storefront.returns.events import ReturnApproved, ReturnCompleted, ReturnRejected, ReturnRequested
from storefront.shared.money import Money


class ReturnStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


class ReturnReason(Enum):
    DEFECTIVE = "Defective"
    NOT_AS_DESCRIBED = "Not_As_Described"
    WRONG_ITEM = "Wrong_Item"
    CHANGED_MIND = "Changed_Mind"
    SIZE_ISSUE = "Size_Issue"
    DAMAGED_SHIPPING = "Damaged_Shipping"
    OTHER = "Other"


_VALID_TRANSITIONS = {
    ReturnStatus.PENDING: frozenset({ReturnStatus.APPROVED, ReturnStatus.REJECTED}),
    ReturnStatus.APPROVED: frozenset({ReturnStatus.COMPLETED}),
    ReturnStatus.REJECTED: frozenset(),  # Terminal
    ReturnStatus.COMPLETED: frozenset(),  # Terminal
}

ACTIVE_STATUSES = frozenset({ReturnStatus.PENDING, ReturnStatus.APPROVED})


@storefront.entity(part_of="ReturnRequest")
class ReturnLine:
    order_line_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    reason = String(required=True, choices=ReturnReason)
    note = Text()


@storefront.aggregate
class ReturnRequest:
    order_id = Identifier(required=True)
    lines = HasMany(ReturnLine)
    status = String(choices=ReturnStatus, default=ReturnStatus.PENDING.value)
    requested_by = String(max_length=100)
    rejection_reason = Text()
    refund_amount = ValueObject(Money)
    refund_reference = String(max_length=255)
    resolved_by = String(max_length=100)
    requested_at = DateTime()
    resolved_at = DateTime()
    completed_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def open(cls, order_id, lines, requested_by, requested_at):
        """Open a PENDING request.

        Args:
            lines: Iterable of dicts with order_line_id, quantity, reason and optional note.
        """
        request = cls(
            order_id=str(order_id),
            status=ReturnStatus.PENDING.value,
            requested_by=requested_by,
            requested_at=requested_at,
        )
        for line in lines:
            request.add_lines(ReturnLine(**line))

        request.raise_(
            ReturnRequested(
                return_id=str(request.id),
                order_id=str(order_id),
                requested_by=requested_by,
                item_count=sum(line.quantity for line in request.lines),
                requested_at=requested_at,
            )
        )
        return request

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    @property
    def is_active(self) -> bool:
        return ReturnStatus(self.status) in ACTIVE_STATUSES

    def assert_can_transition(self, target: ReturnStatus):
        current = ReturnStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise IllegalTransitionError(current.value, target.value, f"return {self.id} is already {current.value}")

    def approve(self, refund_amount: Money, refund_reference, actor, at):
        self.assert_can_transition(ReturnStatus.APPROVED)
        self.status = ReturnStatus.APPROVED.value
        self.refund_amount = refund_amount
        self.refund_reference = refund_reference
        self.resolved_by = actor
        self.resolved_at = at

        self.raise_(
            ReturnApproved(
                return_id=str(self.id),
                order_id=str(self.order_id),
                refund_amount=refund_amount.amount,
                currency=refund_amount.currency,
                refund_reference=refund_reference,
                approved_by=actor,
                approved_at=at,
            )
        )

    def reject(self, rejection_reason, actor, at):
        self.assert_can_transition(ReturnStatus.REJECTED)
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationError({"rejection_reason": ["A rejection reason is required"]})

        self.status = ReturnStatus.REJECTED.value
        self.rejection_reason = rejection_reason.strip()
        self.resolved_by = actor
        self.resolved_at = at

        self.raise_(
            ReturnRejected(
                return_id=str(self.id),
                order_id=str(self.order_id),
                reason=self.rejection_reason,
                rejected_by=actor,
                rejected_at=at,
            )
        )

    def complete(self, actor, at):
        self.assert_can_transition(ReturnStatus.COMPLETED)
        self.status = ReturnStatus.COMPLETED.value
        self.completed_at = at

        self.raise_(
            ReturnCompleted(
                return_id=str(self.id),
                order_id=str(self.order_id),
                completed_by=actor,
                completed_at=at,
            )
        )
