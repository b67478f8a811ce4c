"""Baseline schema: clinics with AI settings, pipeline stages, leads, AI reports

Revision ID: 3f1a9c0d7b21
Revises:
Create Date: 2026-10-16 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c0d7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('clinics',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('ai_active_for_all_new_leads', sa.Boolean(), nullable=True),
        sa.Column('ai_active_for_ad_leads_only', sa.Boolean(), nullable=True),
        sa.Column('ai_chat_suggestions_active', sa.Boolean(), nullable=True),
        sa.Column('ai_operating_mode', sa.Text(), nullable=True),
        sa.Column('ai_business_hours_start_weekday', sa.Text(), nullable=True),
        sa.Column('ai_business_hours_end_weekday', sa.Text(), nullable=True),
        sa.Column('ai_active_saturday', sa.Boolean(), nullable=True),
        sa.Column('ai_saturday_hours_start', sa.Text(), nullable=True),
        sa.Column('ai_saturday_hours_end', sa.Text(), nullable=True),
        sa.Column('ai_active_sunday', sa.Boolean(), nullable=True),
        sa.Column('ai_sunday_hours_start', sa.Text(), nullable=True),
        sa.Column('ai_sunday_hours_end', sa.Text(), nullable=True),
        sa.Column('ai_name', sa.Text(), nullable=True),
        sa.Column('ai_clinica_prompt', sa.Text(), nullable=True),
        sa.Column('ai_restricted_topics_prompt', sa.Text(), nullable=True),
        sa.Column('admin_prompt', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('pipeline_stages',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('clinic_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pipeline_stages_clinic_order', 'pipeline_stages', ['clinic_id', 'order'])

    op.create_table('leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('clinic_id', sa.Text(), nullable=False),
        sa.Column('stage_id', sa.Text(), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('origin', sa.Text(), nullable=True),
        sa.Column('ai_conversation_enabled', sa.Boolean(), nullable=True),
        sa.Column('last_contact_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stage_id'], ['pipeline_stages.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_clinic_id', 'leads', ['clinic_id'])
    op.create_index('ix_leads_stage_id', 'leads', ['stage_id'])

    op.create_table('ai_reports',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('clinic_id', sa.Text(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('delivery_method', sa.Text(), nullable=False),
        sa.Column('recipient_phone', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('report_content', sa.Text(), nullable=True),
        sa.Column('report_pdf_url', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ai_reports_clinic_id', 'ai_reports', ['clinic_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_ai_reports_clinic_id', 'ai_reports')
    op.drop_table('ai_reports')
    op.drop_index('ix_leads_stage_id', 'leads')
    op.drop_index('ix_leads_clinic_id', 'leads')
    op.drop_table('leads')
    op.drop_index('ix_pipeline_stages_clinic_order', 'pipeline_stages')
    op.drop_table('pipeline_stages')
    op.drop_table('clinics')
