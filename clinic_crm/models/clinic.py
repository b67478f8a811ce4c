"""
Clinic model — the tenant. Also holds the clinic-wide AI assistant settings.

AI columns are nullable: a clinic created before a setting existed reads as
NULL, and services.ai_settings fills in the defaults.
"""
from sqlalchemy import Column, Text, Boolean, DateTime

from clinic_crm.database import Base
from clinic_crm.models._helpers import new_id, utcnow, isoformat


class Clinic(Base):
    __tablename__ = 'clinics'

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)

    # Activation rules used by services.ai_activation
    ai_active_for_all_new_leads = Column(Boolean, nullable=True)
    ai_active_for_ad_leads_only = Column(Boolean, nullable=True)
    ai_chat_suggestions_active = Column(Boolean, nullable=True)

    # Operating hours ("HH:MM" strings, clinic local time)
    ai_operating_mode = Column(Text, nullable=True)          # 24/7 | horario_comercial
    ai_business_hours_start_weekday = Column(Text, nullable=True)
    ai_business_hours_end_weekday = Column(Text, nullable=True)
    ai_active_saturday = Column(Boolean, nullable=True)
    ai_saturday_hours_start = Column(Text, nullable=True)
    ai_saturday_hours_end = Column(Text, nullable=True)
    ai_active_sunday = Column(Boolean, nullable=True)
    ai_sunday_hours_start = Column(Text, nullable=True)
    ai_sunday_hours_end = Column(Text, nullable=True)

    # Persona
    ai_name = Column(Text, nullable=True)
    ai_clinica_prompt = Column(Text, nullable=True)
    ai_restricted_topics_prompt = Column(Text, nullable=True)
    admin_prompt = Column(Text, nullable=True)

    # WhatsApp gateway instance outbound chat messages are sent through
    whatsapp_instance_name = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
