"""Domain events for the ReturnRequest aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from storefront.domain import storefront


@storefront.event(part_of="ReturnRequest")
class ReturnRequested:
    """A customer asked to return items from a delivered order."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    requested_by = String(required=True)
    item_count = Integer(required=True)
    requested_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnApproved:
    """The merchant approved a return and the refund was issued."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    refund_amount = Integer(required=True)
    currency = String(required=True, max_length=3)
    refund_reference = String()
    approved_by = String(required=True)
    approved_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnRejected:
    """The merchant declined a return."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = Text(required=True)
    rejected_by = String(required=True)
    rejected_at = DateTime(required=True)


@storefront.event(part_of="ReturnRequest")
class ReturnCompleted:
    """Returned goods were received back."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    completed_by = String(required=True)
    completed_at = DateTime(required=True)
