"""Storefront bounded context — Order Fulfillment & Pricing Engine.

Prices carts (coupons, tax, shipping), turns them into orders at checkout,
and governs the post-purchase order and return lifecycles.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
