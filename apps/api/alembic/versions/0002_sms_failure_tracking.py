"""Add provider delivery status and failure dismissal to outgoing SMS.

Revision ID: 0002_sms_failure_tracking
Revises: 0001_baseline
Create Date: 2025-10-20

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_sms_failure_tracking'
down_revision: Union[str, None] = '0001_baseline'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('outgoing_sms') as batch_op:
        batch_op.add_column(sa.Column('provider_status', sa.String(20), nullable=True))
        batch_op.add_column(sa.Column('provider_status_updated_at', sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column('dismissed_at', sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column('dismissed_by', sa.String(100), nullable=True))
    op.create_index('idx_outgoing_sms_provider_message', 'outgoing_sms', ['provider_message_id'])


def downgrade() -> None:
    op.drop_index('idx_outgoing_sms_provider_message', table_name='outgoing_sms')
    with op.batch_alter_table('outgoing_sms') as batch_op:
        batch_op.drop_column('dismissed_by')
        batch_op.drop_column('dismissed_at')
        batch_op.drop_column('provider_status_updated_at')
        batch_op.drop_column('provider_status')
