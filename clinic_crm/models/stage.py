"""
Stage model — one column of a clinic's kanban pipeline.

`order` ranks stages left to right within a clinic and is unique per clinic.
A reorder moves the changed rows through temporary negative values first
(see Store.upsert_stage_order), so the rewrite never trips the constraint
mid-batch.
"""
from sqlalchemy import Column, Text, Integer, DateTime, ForeignKey, UniqueConstraint

from clinic_crm.database import Base
from clinic_crm.models._helpers import new_id, utcnow, isoformat


class Stage(Base):
    __tablename__ = 'pipeline_stages'
    __table_args__ = (
        UniqueConstraint('clinic_id', 'order', name='uq_pipeline_stages_clinic_order'),
    )

    id = Column(Text, primary_key=True, default=new_id)
    clinic_id = Column(Text, ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_id': self.clinic_id,
            'name': self.name,
            'order': self.order,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
