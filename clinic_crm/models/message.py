"""
Message model — one chat message between the clinic and a lead.

Outbound messages (sent_by='user') carry a delivery_status that the
WhatsApp webhook worker moves pending → sent | failed. Inbound messages
(sent_by='lead') have no delivery state and start unread.
"""
from sqlalchemy import Column, Text, Boolean, Integer, DateTime, ForeignKey, Index

from clinic_crm.database import Base
from clinic_crm.models._helpers import new_id, utcnow, isoformat


class Message(Base):
    __tablename__ = 'chat_messages'
    __table_args__ = (
        Index('ix_chat_messages_lead_created', 'lead_id', 'created_at'),
        Index('ix_chat_messages_clinic_id', 'clinic_id'),
    )

    id = Column(Text, primary_key=True, default=new_id)
    clinic_id = Column(Text, ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False)
    lead_id = Column(Text, ForeignKey('leads.id', ondelete='CASCADE'), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(Text, nullable=False, default='text')
    sent_by = Column(Text, nullable=False)              # user | lead
    read = Column(Boolean, nullable=False, default=False)
    delivery_status = Column(Text, nullable=True)       # pending | sent | failed
    delivery_attempts = Column(Integer, nullable=False, default=0)
    delivery_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_id': self.clinic_id,
            'lead_id': self.lead_id,
            'content': self.content,
            'message_type': self.message_type,
            'sent_by': self.sent_by,
            'read': self.read,
            'delivery_status': self.delivery_status,
            'delivery_attempts': self.delivery_attempts,
            'delivery_error': self.delivery_error,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
