"""
Persistent store — every read/write the pipeline and AI logic need, over SQLAlchemy.

Each method runs in its own session and transaction. Multi-row writes
(bulk lead reassignment, stage order rewrite) are one statement batch in
one transaction, so callers see all-or-nothing. Cross-call atomicity is not
offered; services.stages layers its two-phase delete on top.

Database errors roll back, get logged, and surface as StoreUnavailable.
After each commit the change is published to the realtime feed.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from clinic_crm import database
from clinic_crm.errors import (
    ConflictError, CRMError, NotFoundError, PreconditionRequired, StoreUnavailable, ValidationError,
)
from clinic_crm.models._helpers import new_id, utcnow, isoformat
from clinic_crm.models.clinic import Clinic
from clinic_crm.models.lead import Lead
from clinic_crm.models.message import Message
from clinic_crm.models.stage import Stage
from clinic_crm.services import realtime

logger = logging.getLogger('services.store')

STAGE_INSERT_ATTEMPTS = 3

# Lead columns a PATCH may change; stage and AI state have their own operations
LEAD_EDITABLE_FIELDS = ('name', 'phone', 'email', 'origin')


def _next_stage_order(session, clinic_id):
    max_order = session.scalar(
        select(func.max(Stage.order)).where(Stage.clinic_id == clinic_id)
    )
    return 0 if max_order is None else max_order + 1


@dataclass(frozen=True)
class ClinicAISettings:
    """The two clinic-wide flags the activation resolver reads."""
    ai_active_for_all_new_leads: bool = False
    ai_active_for_ad_leads_only: bool = False


class Store:
    """
    SQLAlchemy-backed store. `publish` receives (table, clinic_id, op, row)
    after every committed change; tests pass a MagicMock.
    """

    def __init__(self, publish=None):
        self._publish = publish or realtime.publish_change

    # ── Plumbing ──────────────────────────────────────────────────────

    @contextmanager
    def _session(self, action):
        session = database.get_session()
        try:
            yield session
            session.commit()
        except CRMError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Store failure during %s", action, exc_info=True)
            raise StoreUnavailable(f"Database unavailable during {action}") from e
        finally:
            session.close()

    def _emit(self, table, clinic_id, op, row):
        self._publish(table, clinic_id, op, row)

    # ── Clinics ───────────────────────────────────────────────────────

    def create_clinic(self, name: str, **settings) -> Clinic:
        with self._session('create_clinic') as session:
            clinic = Clinic(id=new_id(), name=name, **settings)
            session.add(clinic)
        return clinic

    def read_clinic(self, clinic_id: str) -> Clinic:
        with self._session('read_clinic') as session:
            clinic = session.get(Clinic, clinic_id)
            if clinic is None:
                raise NotFoundError('clinic', clinic_id)
        return clinic

    def update_clinic(self, clinic_id: str, values: Dict) -> Clinic:
        with self._session('update_clinic') as session:
            clinic = session.get(Clinic, clinic_id)
            if clinic is None:
                raise NotFoundError('clinic', clinic_id)
            for key, value in values.items():
                setattr(clinic, key, value)
            clinic.updated_at = utcnow()
        self._emit('clinics', clinic_id, 'update', clinic.to_dict())
        return clinic

    def read_clinic_ai_settings(self, clinic_id: str) -> Optional[ClinicAISettings]:
        """None means the settings are not available (yet) for this clinic."""
        with self._session('read_clinic_ai_settings') as session:
            clinic = session.get(Clinic, clinic_id)
            if clinic is None:
                return None
            return ClinicAISettings(
                ai_active_for_all_new_leads=bool(clinic.ai_active_for_all_new_leads),
                ai_active_for_ad_leads_only=bool(clinic.ai_active_for_ad_leads_only),
            )

    # ── Leads ─────────────────────────────────────────────────────────

    def read_lead(self, lead_id: str, clinic_id: str = None) -> Lead:
        with self._session('read_lead') as session:
            lead = session.get(Lead, lead_id)
            # Another tenant's lead is reported exactly like a missing one
            if lead is None or (clinic_id is not None and lead.clinic_id != clinic_id):
                raise NotFoundError('lead', lead_id)
        return lead

    def create_lead(self, clinic_id: str, stage_id: str, name: str = '', origin: str = None,
                    phone: str = None, email: str = None) -> Lead:
        with self._session('create_lead') as session:
            now = utcnow()
            lead = Lead(
                id=new_id(),
                clinic_id=clinic_id,
                stage_id=stage_id,
                name=name,
                origin=origin,
                phone=phone,
                email=email,
                ai_conversation_enabled=None,
                last_contact_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(lead)
        self._emit('leads', clinic_id, 'insert', lead.to_dict())
        return lead

    def set_lead_ai_enabled(self, lead_id: str, value: bool, only_if_null: bool = False) -> bool:
        """
        Write ai_conversation_enabled. With only_if_null the UPDATE is
        conditional on the column still being NULL (compare-and-swap), so a
        concurrent manual toggle is never overwritten. Returns whether a row
        changed.
        """
        with self._session('set_lead_ai_enabled') as session:
            stmt = update(Lead).where(Lead.id == lead_id)
            if only_if_null:
                stmt = stmt.where(Lead.ai_conversation_enabled.is_(None))
            result = session.execute(
                stmt.values(ai_conversation_enabled=value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount > 0
            if not changed and not only_if_null:
                raise NotFoundError('lead', lead_id)
            lead = session.get(Lead, lead_id, populate_existing=True) if changed else None
        if lead is not None:
            self._emit('leads', lead.clinic_id, 'update', lead.to_dict())
        return changed

    def move_lead(self, lead_id: str, stage_id: str, clinic_id: str) -> Lead:
        """Move one card to another column of the same clinic."""
        with self._session('move_lead') as session:
            lead = session.get(Lead, lead_id)
            if lead is None or lead.clinic_id != clinic_id:
                raise NotFoundError('lead', lead_id)
            stage = session.get(Stage, stage_id)
            if stage is None or stage.clinic_id != clinic_id:
                raise NotFoundError('stage', stage_id)
            now = utcnow()
            lead.stage_id = stage_id
            lead.last_contact_at = now
            lead.updated_at = now
        self._emit('leads', clinic_id, 'update', lead.to_dict())
        return lead

    def update_lead(self, lead_id: str, clinic_id: str, values: Dict) -> Lead:
        """Edit a lead's contact fields (LEAD_EDITABLE_FIELDS only)."""
        unknown = sorted(set(values) - set(LEAD_EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Lead fields not editable here: {', '.join(unknown)}")
        if any(v is not None and not isinstance(v, str) for v in values.values()):
            raise ValidationError("Lead fields must be strings or null")
        with self._session('update_lead') as session:
            lead = session.get(Lead, lead_id)
            if lead is None or lead.clinic_id != clinic_id:
                raise NotFoundError('lead', lead_id)
            for key, value in values.items():
                setattr(lead, key, value)
            lead.updated_at = utcnow()
        self._emit('leads', clinic_id, 'update', lead.to_dict())
        return lead

    def delete_lead(self, lead_id: str, clinic_id: str):
        """Delete a lead and its chat history in one transaction."""
        with self._session('delete_lead') as session:
            lead = session.get(Lead, lead_id)
            if lead is None or lead.clinic_id != clinic_id:
                raise NotFoundError('lead', lead_id)
            session.execute(delete(Message).where(Message.lead_id == lead_id))
            session.execute(delete(Lead).where(Lead.id == lead_id))
        self._emit('leads', clinic_id, 'delete', {
            'id': lead_id,
            'clinic_id': clinic_id,
            'updated_at': isoformat(utcnow()),
        })

    def list_leads_by_stage(self, stage_id: str) -> List[Lead]:
        with self._session('list_leads_by_stage') as session:
            return list(session.scalars(
                select(Lead).where(Lead.stage_id == stage_id).order_by(Lead.created_at, Lead.id)
            ))

    def reassign_leads_stage(self, lead_ids: Iterable[str], target_stage_id: str) -> int:
        """
        Bulk-move leads in one UPDATE. Re-running with the same ids just
        re-stamps last_contact_at, so a retry after a partial failure is safe.
        """
        lead_ids = list(lead_ids)
        if not lead_ids:
            return 0
        with self._session('reassign_leads_stage') as session:
            now = utcnow()
            result = session.execute(
                update(Lead)
                .where(Lead.id.in_(lead_ids))
                .values(stage_id=target_stage_id, last_contact_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            moved = list(session.scalars(
                select(Lead).where(Lead.id.in_(lead_ids)).execution_options(populate_existing=True)
            ))
            count = result.rowcount
        for lead in moved:
            self._emit('leads', lead.clinic_id, 'update', lead.to_dict())
        return count

    # ── Stages ────────────────────────────────────────────────────────

    def list_stages(self, clinic_id: str) -> List[Stage]:
        with self._session('list_stages') as session:
            return list(session.scalars(
                select(Stage).where(Stage.clinic_id == clinic_id).order_by(Stage.order, Stage.id)
            ))

    def read_stage(self, stage_id: str, clinic_id: str) -> Stage:
        with self._session('read_stage') as session:
            stage = session.get(Stage, stage_id)
            if stage is None or stage.clinic_id != clinic_id:
                raise NotFoundError('stage', stage_id)
        return stage

    def insert_stage(self, clinic_id: str, name: str) -> Stage:
        """
        Append a stage after the clinic's current last one (order 0 when empty).

        The clinic row is locked while the next order is read, so concurrent
        creates on Postgres queue up. Where the lock is not available the
        (clinic_id, order) constraint rejects the loser, which re-reads and
        tries again.
        """
        for attempt in range(1, STAGE_INSERT_ATTEMPTS + 1):
            try:
                with self._session('insert_stage') as session:
                    locked = session.scalar(
                        select(Clinic.id).where(Clinic.id == clinic_id).with_for_update()
                    )
                    if locked is None:
                        raise NotFoundError('clinic', clinic_id)
                    stage = Stage(
                        id=new_id(),
                        clinic_id=clinic_id,
                        name=name,
                        order=_next_stage_order(session, clinic_id),
                    )
                    session.add(stage)
                    try:
                        session.flush()
                    except IntegrityError as e:
                        raise ConflictError(
                            f"Stage order taken concurrently in clinic '{clinic_id}'"
                        ) from e
            except ConflictError:
                if attempt == STAGE_INSERT_ATTEMPTS:
                    raise
                logger.warning("Stage order collision on insert, retrying (attempt %d)", attempt,
                               extra={'clinic_id': clinic_id})
                continue
            self._emit('pipeline_stages', clinic_id, 'insert', stage.to_dict())
            return stage

    def rename_stage(self, stage_id: str, clinic_id: str, name: str) -> Stage:
        with self._session('rename_stage') as session:
            stage = session.get(Stage, stage_id)
            if stage is None or stage.clinic_id != clinic_id:
                raise NotFoundError('stage', stage_id)
            stage.name = name
            stage.updated_at = utcnow()
        self._emit('pipeline_stages', clinic_id, 'update', stage.to_dict())
        return stage

    def delete_stage(self, stage_id: str, clinic_id: str):
        """
        Delete a stage row. Refuses while any lead still references it, which
        also covers leads that arrived between a migration and this call.
        """
        with self._session('delete_stage') as session:
            stage = session.get(Stage, stage_id)
            if stage is None or stage.clinic_id != clinic_id:
                raise NotFoundError('stage', stage_id)
            remaining = list(session.scalars(select(Lead.id).where(Lead.stage_id == stage_id)))
            if remaining:
                raise PreconditionRequired(
                    f"Stage '{stage.name}' still has {len(remaining)} lead(s)",
                    lead_ids=remaining,
                )
            session.execute(delete(Stage).where(Stage.id == stage_id))
        self._emit('pipeline_stages', clinic_id, 'delete', {
            'id': stage_id,
            'clinic_id': clinic_id,
            'updated_at': isoformat(utcnow()),
        })

    def upsert_stage_order(self, clinic_id: str, updates: List[Dict]):
        """
        Apply [{'id': ..., 'order': ...}, ...] in one transaction. Any id that
        is not one of this clinic's stages aborts the batch untouched.
        """
        if not updates:
            return
        with self._session('upsert_stage_order') as session:
            ids = [u['id'] for u in updates]
            stages = {
                s.id: s for s in session.scalars(
                    select(Stage).where(Stage.clinic_id == clinic_id, Stage.id.in_(ids))
                )
            }
            missing = [i for i in ids if i not in stages]
            if missing:
                raise NotFoundError('stage', missing[0])
            # Park the moving rows on distinct negative orders so no
            # intermediate state repeats an (clinic_id, order) pair
            for index, u in enumerate(updates):
                stages[u['id']].order = -(index + 1)
            session.flush()
            now = utcnow()
            for u in updates:
                stages[u['id']].order = u['order']
                stages[u['id']].updated_at = now
            try:
                session.flush()
            except IntegrityError as e:
                raise ValidationError("Stage orders must be unique within a clinic") from e
        for u in updates:
            self._emit('pipeline_stages', clinic_id, 'update', stages[u['id']].to_dict())


_default_store = None


def get_store() -> Store:
    """Process-wide Store used by the routes."""
    global _default_store
    if _default_store is None:
        _default_store = Store()
    return _default_store
