"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .audience_member import (
    AudienceMemberFactory,
    PurchaseFactory,
    SubscriberFactory,
)
from .segment import FilterFactory, FilterGroupFactory

__all__ = [
    "AudienceMemberFactory",
    "PurchaseFactory",
    "SubscriberFactory",
    "FilterFactory",
    "FilterGroupFactory",
]
