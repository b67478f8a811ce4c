"""
AIReport model — one requested AI analysis report for a clinic and period.

Tracked by status: pending → processing → completed | failed, and
pending | processing → cancelled.
"""
from sqlalchemy import Column, Text, Date, DateTime, ForeignKey

from clinic_crm.database import Base
from clinic_crm.models._helpers import new_id, utcnow, isoformat


class AIReport(Base):
    __tablename__ = 'ai_reports'

    id = Column(Text, primary_key=True, default=new_id)
    clinic_id = Column(Text, ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    delivery_method = Column(Text, nullable=False, default='in_app')  # in_app | whatsapp
    recipient_phone = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default='pending')
    report_content = Column(Text, nullable=True)
    report_pdf_url = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_id': self.clinic_id,
            'start_date': isoformat(self.start_date),
            'end_date': isoformat(self.end_date),
            'delivery_method': self.delivery_method,
            'recipient_phone': self.recipient_phone,
            'status': self.status,
            'report_content': self.report_content,
            'report_pdf_url': self.report_pdf_url,
            'error_message': self.error_message,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
