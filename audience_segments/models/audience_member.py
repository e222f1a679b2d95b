"""
Audience member model.

One row per (seller, contact). Purchase and follow events keep the aggregate
columns and the ``details`` blob up to date; the segment engine only reads it.

``details`` layout::

    {
        "purchases": [
            {"product_id": "123", "country": "US",
             "created_at": "2025-06-01T10:00:00", "price_cents": 2500}
        ]
    }
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Index, UniqueConstraint
from sqlalchemy.sql import func
from audience_segments.database import Base


class AudienceMember(Base):
    """A customer, subscriber or affiliate belonging to one seller."""

    __tablename__ = "audience_members"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, nullable=False, index=True)
    email = Column(String(255), nullable=False)

    # customer, subscriber, affiliate, everyone
    audience_type = Column(String(20), nullable=False, default="customer")

    # Earliest / latest purchase or join timestamp
    min_created_at = Column(DateTime)
    max_created_at = Column(DateTime)

    # Smallest / largest single payment in cents
    min_paid_cents = Column(Integer)
    max_paid_cents = Column(Integer)

    details = Column(JSON)

    created_at = Column(DateTime, server_default=func.now())
    # Doubles as the last-activity timestamp for email engagement filters
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("seller_id", "email", name="uq_audience_members_seller_email"),
        Index("ix_audience_members_seller_min_created", "seller_id", "min_created_at"),
        Index("ix_audience_members_seller_paid", "seller_id", "min_paid_cents", "max_paid_cents"),
    )

    def __repr__(self):
        return f"<AudienceMember {self.email} seller={self.seller_id}>"
