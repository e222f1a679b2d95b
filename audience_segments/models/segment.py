"""
Segment models.

A segment is a named, reusable recipient-selection rule:

    Segment  --(owner_kind="segment", owner_id)-->  AudienceMemberFilterGroup (OR)
    AudienceMemberFilterGroup  --FK-->  AudienceMemberFilter (AND)

Filter groups carry a polymorphic owner reference so that email campaigns
("installments") and workflows can own groups directly as well. Resolving the
owner is the caller's business; the evaluation engine only needs the seller.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey, JSON, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from audience_segments.database import Base


OWNER_SEGMENT = "segment"
OWNER_INSTALLMENT = "installment"
OWNER_WORKFLOW = "workflow"
OWNER_KINDS = (OWNER_SEGMENT, OWNER_INSTALLMENT, OWNER_WORKFLOW)
OWNER_KIND_CHECK = "owner_kind IN (" + ", ".join(f"'{kind}'" for kind in OWNER_KINDS) + ")"


class Segment(Base):
    """Named union of filter groups, unique per seller."""

    __tablename__ = "segments"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Advisory only: customer, subscriber, affiliate, everyone
    audience_type = Column(String(20), nullable=False, default="customer")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("seller_id", "name", name="uq_segments_seller_name"),
    )

    def __repr__(self):
        return f"<Segment {self.name} seller={self.seller_id}>"


class AudienceMemberFilterGroup(Base):
    """AND-combination of filters, owned by a segment, installment or workflow."""

    __tablename__ = "audience_member_filter_groups"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, default="Filter Group")

    owner_kind = Column(String(20), nullable=False, default=OWNER_SEGMENT)
    owner_id = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    filters = relationship(
        "AudienceMemberFilter",
        back_populates="filter_group",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AudienceMemberFilter.id",
    )

    __table_args__ = (
        CheckConstraint(OWNER_KIND_CHECK, name="ck_filter_groups_owner_kind"),
        Index("ix_filter_groups_owner", "owner_kind", "owner_id"),
        Index("ix_filter_groups_seller", "seller_id", "id"),
    )

    def __repr__(self):
        return f"<AudienceMemberFilterGroup {self.name} {self.owner_kind}:{self.owner_id}>"


class AudienceMemberFilter(Base):
    """A single typed condition: filter_type plus an operator/operands config."""

    __tablename__ = "audience_member_filters"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, nullable=False)
    filter_group_id = Column(
        Integer,
        ForeignKey("audience_member_filter_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # date, product, payment, location, email_engagement
    filter_type = Column(String(30), nullable=False)
    config = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    filter_group = relationship("AudienceMemberFilterGroup", back_populates="filters")

    __table_args__ = (
        Index("ix_audience_member_filters_seller_type", "seller_id", "filter_type"),
    )

    def __repr__(self):
        return f"<AudienceMemberFilter {self.filter_type} {self.config}>"


class InstallmentSegmentJoin(Base):
    """Links an email campaign (installment) to a recipient segment."""

    __tablename__ = "installment_segment_joins"

    id = Column(Integer, primary_key=True, index=True)
    installment_id = Column(Integer, nullable=False)
    segment_id = Column(Integer, ForeignKey("segments.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("installment_id", "segment_id", name="uq_installment_segment"),
    )


class WorkflowSegmentJoin(Base):
    """Links an automated workflow to a recipient segment."""

    __tablename__ = "workflow_segment_joins"

    id = Column(Integer, primary_key=True, index=True)
    workflow_id = Column(Integer, nullable=False)
    segment_id = Column(Integer, ForeignKey("segments.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("workflow_id", "segment_id", name="uq_workflow_segment"),
    )
