"""
Lead model — one prospective patient tracked through a clinic's pipeline.

ai_conversation_enabled is tri-state: NULL until the activation resolver
runs, then a sticky True/False that only a manual toggle changes.
"""
from sqlalchemy import Column, Text, Boolean, DateTime, ForeignKey, Index

from clinic_crm.database import Base
from clinic_crm.models._helpers import new_id, utcnow, isoformat


class Lead(Base):
    __tablename__ = 'leads'
    __table_args__ = (
        Index('ix_leads_clinic_id', 'clinic_id'),
        Index('ix_leads_stage_id', 'stage_id'),
    )

    id = Column(Text, primary_key=True, default=new_id)
    clinic_id = Column(Text, ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False)
    stage_id = Column(Text, ForeignKey('pipeline_stages.id', ondelete='RESTRICT'), nullable=True)
    name = Column(Text, default='')
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    origin = Column(Text, nullable=True)    # free text: "Instagram Ads", "indicação", ...
    ai_conversation_enabled = Column(Boolean, nullable=True)
    last_contact_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_id': self.clinic_id,
            'stage_id': self.stage_id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
            'origin': self.origin,
            'ai_conversation_enabled': self.ai_conversation_enabled,
            'last_contact_at': isoformat(self.last_contact_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
