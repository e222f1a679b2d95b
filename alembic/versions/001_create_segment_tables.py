"""Create audience member, segment and filter tables

Revision ID: 001_create_segment_tables
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_segment_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create segment tables."""
    op.create_table(
        'audience_members',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('seller_id', sa.Integer, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('audience_type', sa.String(20), nullable=False, server_default='customer'),
        sa.Column('min_created_at', sa.DateTime, nullable=True),
        sa.Column('max_created_at', sa.DateTime, nullable=True),
        sa.Column('min_paid_cents', sa.Integer, nullable=True),
        sa.Column('max_paid_cents', sa.Integer, nullable=True),
        sa.Column('details', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('seller_id', 'email', name='uq_audience_members_seller_email'),
    )
    op.create_index('ix_audience_members_id', 'audience_members', ['id'])
    op.create_index('ix_audience_members_seller_id', 'audience_members', ['seller_id'])
    op.create_index('ix_audience_members_seller_min_created', 'audience_members', ['seller_id', 'min_created_at'])
    op.create_index('ix_audience_members_seller_paid', 'audience_members', ['seller_id', 'min_paid_cents', 'max_paid_cents'])

    op.create_table(
        'segments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('seller_id', sa.Integer, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('audience_type', sa.String(20), nullable=False, server_default='customer'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('seller_id', 'name', name='uq_segments_seller_name'),
    )
    op.create_index('ix_segments_id', 'segments', ['id'])
    op.create_index('ix_segments_seller_id', 'segments', ['seller_id'])

    op.create_table(
        'audience_member_filter_groups',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('seller_id', sa.Integer, nullable=False),
        sa.Column('name', sa.String(255), nullable=False, server_default='Filter Group'),
        sa.Column('owner_kind', sa.String(20), nullable=False, server_default='segment'),
        sa.Column('owner_id', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint(
            "owner_kind IN ('segment', 'installment', 'workflow')",
            name='ck_filter_groups_owner_kind',
        ),
    )
    op.create_index('ix_audience_member_filter_groups_id', 'audience_member_filter_groups', ['id'])
    op.create_index('ix_filter_groups_owner', 'audience_member_filter_groups', ['owner_kind', 'owner_id'])
    op.create_index('ix_filter_groups_seller', 'audience_member_filter_groups', ['seller_id', 'id'])

    op.create_table(
        'audience_member_filters',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('seller_id', sa.Integer, nullable=False),
        sa.Column(
            'filter_group_id',
            sa.Integer,
            sa.ForeignKey('audience_member_filter_groups.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('filter_type', sa.String(30), nullable=False),
        sa.Column('config', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_audience_member_filters_id', 'audience_member_filters', ['id'])
    op.create_index('ix_audience_member_filters_filter_group_id', 'audience_member_filters', ['filter_group_id'])
    op.create_index('ix_audience_member_filters_seller_type', 'audience_member_filters', ['seller_id', 'filter_type'])

    op.create_table(
        'installment_segment_joins',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('installment_id', sa.Integer, nullable=False),
        sa.Column('segment_id', sa.Integer, sa.ForeignKey('segments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('installment_id', 'segment_id', name='uq_installment_segment'),
    )
    op.create_index('ix_installment_segment_joins_segment_id', 'installment_segment_joins', ['segment_id'])

    op.create_table(
        'workflow_segment_joins',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('workflow_id', sa.Integer, nullable=False),
        sa.Column('segment_id', sa.Integer, sa.ForeignKey('segments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint('workflow_id', 'segment_id', name='uq_workflow_segment'),
    )
    op.create_index('ix_workflow_segment_joins_segment_id', 'workflow_segment_joins', ['segment_id'])


def downgrade():
    """Drop segment tables."""
    op.drop_table('workflow_segment_joins')
    op.drop_table('installment_segment_joins')
    op.drop_table('audience_member_filters')
    op.drop_table('audience_member_filter_groups')
    op.drop_table('segments')
    op.drop_table('audience_members')
