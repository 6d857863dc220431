"""Baseline migration - households, pickup locations, food parcels and outgoing SMS

Revision ID: 0001_baseline
Revises: 
Create Date: 2025-10-01
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create parcel and notification tables."""

    # ==========================================================================
    # Households and locations (read models)
    # ==========================================================================
    op.create_table(
        'households',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('locale', sa.String(10), nullable=False, server_default='sv'),
        sa.Column('anonymized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'pickup_locations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('street_address', sa.String(255), nullable=True),
    )

    # ==========================================================================
    # Food parcels (pickup appointments)
    # ==========================================================================
    op.create_table(
        'food_parcels',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('household_id', sa.Uuid(), sa.ForeignKey('households.id', ondelete='CASCADE'), nullable=False),
        sa.Column('location_id', sa.Uuid(), sa.ForeignKey('pickup_locations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('pickup_window_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('pickup_window_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_picked_up', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('pickup_window_start < pickup_window_end', name='ck_food_parcels_window_order'),
    )
    op.create_index('idx_food_parcels_household', 'food_parcels', ['household_id'])
    op.create_index(
        'idx_food_parcels_active_window',
        'food_parcels',
        ['pickup_window_start'],
        postgresql_where=sa.text('deleted_at IS NULL AND is_picked_up = false'),
    )

    # ==========================================================================
    # Outgoing SMS
    # ==========================================================================
    op.create_table(
        'outgoing_sms',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('intent', sa.String(30), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), sa.ForeignKey('food_parcels.id', ondelete='CASCADE'), nullable=True),
        sa.Column('household_id', sa.Uuid(), sa.ForeignKey('households.id', ondelete='CASCADE'), nullable=False),
        sa.Column('recipient', sa.String(32), nullable=False),
        sa.Column('rendered_text', sa.Text(), nullable=False),
        sa.Column('locale', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='queued'),
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('provider_message_id', sa.String(100), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('cancel_reason', sa.String(50), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('uq_outgoing_sms_idempotency', 'outgoing_sms', ['idempotency_key'], unique=True)
    op.create_index(
        'idx_outgoing_sms_due',
        'outgoing_sms',
        ['status', 'due_at'],
        postgresql_where=sa.text("status = 'queued'"),
    )
    op.create_index('idx_outgoing_sms_appointment', 'outgoing_sms', ['appointment_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('outgoing_sms')
    op.drop_table('food_parcels')
    op.drop_table('pickup_locations')
    op.drop_table('households')
