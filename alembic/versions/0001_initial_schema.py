"""Initial wedding fund schema.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True),
                      server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    op.create_table(
        'guests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_attending', sa.Boolean(), nullable=True),
        sa.Column('plus_ones', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('dietary_restrictions', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('message', sa.Text(), nullable=True),
        *_timestamps(),
    )
    # One guest per normalized phone; guest upserts rely on it
    op.create_index('ix_guests_phone', 'guests', ['phone'], unique=True)

    op.create_table(
        'contributions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('guest_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('guests.id', ondelete='SET NULL'),
                  nullable=True, index=True),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='UGX'),
        sa.Column('reference', sa.String(100), nullable=False),
        sa.Column('gateway_tracking_id', sa.String(100), nullable=True, index=True),
        sa.Column('gateway_reference', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False,
                  server_default='pending', index=True),
        sa.Column('metadata', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('contributor_name', sa.String(255), nullable=True),
        sa.Column('contributor_email', sa.String(255), nullable=True),
        sa.Column('contributor_phone', sa.String(20), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_contributions_amount_positive'),
    )
    op.create_index('ix_contributions_reference', 'contributions', ['reference'], unique=True)

    op.create_table(
        'pledges',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('guest_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('guests.id', ondelete='SET NULL'),
                  nullable=True, index=True),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('fulfilled_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('item_description', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False,
                  server_default='pending', index=True),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('fulfilled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'meetings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_attendees', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_wedding', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cover_image_url', sa.String(500), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'attendances',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('meeting_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('meetings.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('guest_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('guests.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='registered'),
        *_timestamps(updated=False),
        sa.UniqueConstraint('meeting_id', 'guest_id', name='uq_attendances_meeting_guest'),
    )

    op.create_table(
        'guest_messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('guest_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('guests.id', ondelete='CASCADE'),
                  nullable=True, index=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
    )

    op.create_table(
        'gallery',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('image_url', sa.String(1000), nullable=False),
        sa.Column('caption', sa.Text(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
    )

    op.create_table(
        'site_settings',
        sa.Column('key', sa.String(100), primary_key=True),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('table_name', sa.String(50), nullable=False, index=True),
        sa.Column('record_id', sa.String(100), nullable=False),
        sa.Column('changes', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('actor', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('site_settings')
    op.drop_table('gallery')
    op.drop_table('guest_messages')
    op.drop_table('attendances')
    op.drop_table('meetings')
    op.drop_table('pledges')
    op.drop_index('ix_contributions_reference', table_name='contributions')
    op.drop_table('contributions')
    op.drop_index('ix_guests_phone', table_name='guests')
    op.drop_table('guests')
