"""
Stage lifecycle — create, rename, reorder and delete pipeline columns.

Deleting a stage that still holds leads is a two-phase operation:
  1. move every lead on it to a target stage (one bulk update, retryable)
  2. delete the now-empty stage
Step 2 only runs after step 1 succeeds, and the store re-checks emptiness
at delete time, so no lead is ever left pointing at a deleted stage.
"""
import logging
from typing import Dict, List, Optional, Sequence

from clinic_crm.errors import NotFoundError, PreconditionRequired, ValidationError
from clinic_crm.services import notifications
from clinic_crm.services.store import Store, get_store

logger = logging.getLogger('services.stages')


def compute_reorder(stage_ids: Sequence[str], source_id: str, target_id: str) -> List[Dict]:
    """
    Move source_id into target_id's slot and renumber everything 0..n-1.

    stage_ids is the current display order. Raises NotFoundError when either
    id is unknown. Moving a stage onto itself returns the current sequence
    unchanged.
    """
    ids = list(stage_ids)
    if source_id not in ids:
        raise NotFoundError('stage', source_id)
    if target_id not in ids:
        raise NotFoundError('stage', target_id)

    target_index = ids.index(target_id)
    ids.remove(source_id)
    ids.insert(target_index, source_id)
    return [{'id': stage_id, 'order': index} for index, stage_id in enumerate(ids)]


def _clean_name(name) -> str:
    cleaned = name.strip() if isinstance(name, str) else ''
    if not cleaned:
        raise ValidationError("Stage name is required")
    return cleaned


class StageLifecycle:
    """Stage operations for one store. Every call names its clinic explicitly."""

    def __init__(self, store: Store = None):
        self.store = store or get_store()

    def list_stages(self, clinic_id: str):
        return self.store.list_stages(clinic_id)

    def create_stage(self, clinic_id: str, name: str):
        stage = self.store.insert_stage(clinic_id, _clean_name(name))
        logger.info("Created stage %s '%s' at order %d", stage.id, stage.name, stage.order,
                    extra={'clinic_id': clinic_id})
        return stage

    def rename_stage(self, clinic_id: str, stage_id: str, name: str):
        return self.store.rename_stage(stage_id, clinic_id, _clean_name(name))

    def reorder_stages(self, clinic_id: str, source_id: str, target_id: str) -> List[Dict]:
        """
        Drag-and-drop a column. Writes every order value whose index changed,
        in a single store transaction. Returns the full new [{id, order}] list.
        """
        stages = self.store.list_stages(clinic_id)
        new_order = compute_reorder([s.id for s in stages], source_id, target_id)

        current = {s.id: s.order for s in stages}
        changed = [u for u in new_order if current[u['id']] != u['order']]
        if changed:
            self.store.upsert_stage_order(clinic_id, changed)
            logger.info("Reordered %d stage(s), moved %s to slot of %s",
                        len(changed), source_id, target_id, extra={'clinic_id': clinic_id})
        return new_order

    def delete_stage(self, clinic_id: str, stage_id: str, target_stage_id: Optional[str] = None):
        """
        Delete a stage. Empty stages go directly; a stage with leads needs
        target_stage_id or PreconditionRequired is raised with the lead ids.
        """
        stage = self.store.read_stage(stage_id, clinic_id)
        leads = self.store.list_leads_by_stage(stage_id)

        if not leads:
            self.store.delete_stage(stage_id, clinic_id)
            logger.info("Deleted empty stage %s '%s'", stage_id, stage.name,
                        extra={'clinic_id': clinic_id})
            return {'deleted': stage_id, 'moved_leads': 0}

        if not target_stage_id:
            raise PreconditionRequired(
                f"Stage '{stage.name}' has {len(leads)} lead(s); choose a stage to move them to",
                lead_ids=[lead.id for lead in leads],
            )
        return self.move_leads_and_delete_stage(clinic_id, target_stage_id, stage_id)

    def move_leads_and_delete_stage(self, clinic_id: str, target_stage_id: str, stage_id: str):
        """
        Move all leads off stage_id onto target_stage_id, then delete stage_id.

        Safe to re-run after a failure in either step: the lead list is read
        fresh each time and reassignment is a plain overwrite.
        """
        if target_stage_id == stage_id:
            raise ValidationError("Target stage must differ from the stage being deleted")

        stage = self.store.read_stage(stage_id, clinic_id)
        target = self.store.read_stage(target_stage_id, clinic_id)

        lead_ids = [lead.id for lead in self.store.list_leads_by_stage(stage_id)]
        moved = self.store.reassign_leads_stage(lead_ids, target.id)
        logger.info("Moved %d lead(s) from stage %s to %s", moved, stage_id, target.id,
                    extra={'clinic_id': clinic_id})

        self.store.delete_stage(stage_id, clinic_id)
        logger.info("Deleted stage %s '%s' after migrating its leads", stage_id, stage.name,
                    extra={'clinic_id': clinic_id})

        if lead_ids:
            notifications.notify_stage_deleted(clinic_id, stage.name, target.name, len(lead_ids))
        return {'deleted': stage_id, 'moved_leads': len(lead_ids), 'target_stage_id': target.id}
