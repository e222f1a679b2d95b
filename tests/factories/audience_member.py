"""
Audience member test factories.

Produce plain dicts ready for ``AudienceMember(**data)``.
"""

from datetime import datetime

import factory
from faker import Faker

fake = Faker()


class PurchaseFactory(factory.Factory):
    """One entry of ``details["purchases"]``."""

    class Meta:
        model = dict

    product_id = factory.Sequence(lambda n: str(1000 + n))
    country = "United States"
    created_at = factory.LazyFunction(lambda: fake.date_time_this_year().isoformat())
    price_cents = factory.LazyFunction(lambda: fake.random_int(min=100, max=50000))


class AudienceMemberFactory(factory.Factory):
    """
    Factory for generating AudienceMember rows.

    Usage:
        member = AudienceMemberFactory(seller_id=1, max_paid_cents=9000)
        members = AudienceMemberFactory.create_batch(5, seller_id=1)
    """

    class Meta:
        model = dict

    class Params:
        purchases = factory.LazyFunction(lambda: [PurchaseFactory()])

    seller_id = 1
    email = factory.Sequence(lambda n: f"member{n}@example.com")
    audience_type = "customer"
    min_created_at = datetime(2025, 3, 1, 12, 0)
    max_created_at = datetime(2025, 6, 1, 12, 0)
    min_paid_cents = 1000
    max_paid_cents = 5000
    details = factory.LazyAttribute(lambda obj: {"purchases": obj.purchases})
    created_at = datetime(2025, 3, 1, 12, 0)
    updated_at = datetime(2025, 6, 1, 12, 0)


class SubscriberFactory(AudienceMemberFactory):
    """Follower without purchases."""

    class Params:
        purchases = factory.LazyFunction(list)

    audience_type = "subscriber"
    min_paid_cents = None
    max_paid_cents = None
