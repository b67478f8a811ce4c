"""Unique stage order per clinic, WhatsApp instance on clinics, chat messages

Revision ID: 8c2e4b6d9a10
Revises: 3f1a9c0d7b21
Create Date: 2026-10-16 15:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8c2e4b6d9a10'
down_revision: Union[str, Sequence[str], None] = '3f1a9c0d7b21'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.drop_index('ix_pipeline_stages_clinic_order', 'pipeline_stages')
    with op.batch_alter_table('pipeline_stages') as batch_op:
        batch_op.create_unique_constraint('uq_pipeline_stages_clinic_order', ['clinic_id', 'order'])

    op.add_column('clinics', sa.Column('whatsapp_instance_name', sa.Text(), nullable=True))

    op.create_table('chat_messages',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('clinic_id', sa.Text(), nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('message_type', sa.Text(), nullable=False),
        sa.Column('sent_by', sa.Text(), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False),
        sa.Column('delivery_status', sa.Text(), nullable=True),
        sa.Column('delivery_attempts', sa.Integer(), nullable=False),
        sa.Column('delivery_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_messages_lead_created', 'chat_messages', ['lead_id', 'created_at'])
    op.create_index('ix_chat_messages_clinic_id', 'chat_messages', ['clinic_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_chat_messages_clinic_id', 'chat_messages')
    op.drop_index('ix_chat_messages_lead_created', 'chat_messages')
    op.drop_table('chat_messages')
    op.drop_column('clinics', 'whatsapp_instance_name')
    with op.batch_alter_table('pipeline_stages') as batch_op:
        batch_op.drop_constraint('uq_pipeline_stages_clinic_order', type_='unique')
    op.create_index('ix_pipeline_stages_clinic_order', 'pipeline_stages', ['clinic_id', 'order'])
