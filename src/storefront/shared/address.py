"""Destination address value object.

Every field is optional: carts may arrive with partial addresses, and the
pricing engines degrade (e.g. to zero tax) instead of rejecting them.
"""

from protean.fields import String

from storefront.domain import storefront


@storefront.value_object
class Address:
    street = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100)
