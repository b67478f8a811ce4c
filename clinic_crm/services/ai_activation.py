"""
AI conversation activation — should the assistant auto-reply to this lead?

Resolution order (first match wins):
  1. The lead already has a stored value → return it, never recompute.
  2. Clinic settings unavailable → False, nothing persisted (retry later).
  3. ai_active_for_all_new_leads → True.
  4. ai_active_for_ad_leads_only and the origin is ad-sourced → True.
  5. Otherwise → False.
Results from 3-5 are written once with a NULL-only conditional update, so a
manual toggle that lands first always wins.
"""
import logging
from typing import Optional

from clinic_crm.services.lead_source import is_ad_sourced
from clinic_crm.services.store import ClinicAISettings, Store, get_store

logger = logging.getLogger('services.ai_activation')


def decide_ai_enabled(settings: Optional[ClinicAISettings], origin) -> Optional[bool]:
    """
    Pure clinic-rule decision for a lead with no stored value.

    Returns None when settings are unavailable (caller falls back to False
    without persisting).
    """
    if settings is None:
        return None
    if settings.ai_active_for_all_new_leads:
        return True
    if settings.ai_active_for_ad_leads_only and is_ad_sourced(origin):
        return True
    return False


def resolve_ai_enabled(lead_id: str, clinic_id: str, store: Store = None) -> bool:
    """Effective AI state for a lead, persisting the clinic-rule default on first resolution."""
    store = store or get_store()
    lead = store.read_lead(lead_id, clinic_id=clinic_id)

    if lead.ai_conversation_enabled is not None:
        return lead.ai_conversation_enabled

    settings = store.read_clinic_ai_settings(clinic_id)
    decided = decide_ai_enabled(settings, lead.origin)
    if decided is None:
        logger.info("AI settings not available, lead %s defaults to disabled", lead_id,
                    extra={'clinic_id': clinic_id})
        return False

    if store.set_lead_ai_enabled(lead_id, decided, only_if_null=True):
        logger.info("Lead %s AI resolved to %s (origin=%r)", lead_id, decided, lead.origin,
                    extra={'clinic_id': clinic_id})
        return decided

    # Lost the race: a toggle or another resolver wrote first. Theirs stands.
    current = store.read_lead(lead_id, clinic_id=clinic_id).ai_conversation_enabled
    logger.info("Lead %s AI already set to %s by a concurrent writer", lead_id, current,
                extra={'clinic_id': clinic_id})
    return bool(current)


def toggle_ai_enabled(lead_id: str, clinic_id: str, store: Store = None) -> bool:
    """
    Flip the lead's effective AI state and persist it unconditionally.

    Not idempotent on purpose: every call inverts. Returns the new value.
    """
    store = store or get_store()
    lead = store.read_lead(lead_id, clinic_id=clinic_id)

    current = lead.ai_conversation_enabled
    if current is None:
        current = bool(decide_ai_enabled(store.read_clinic_ai_settings(clinic_id), lead.origin))

    new_value = not current
    store.set_lead_ai_enabled(lead_id, new_value)
    logger.info("Lead %s AI toggled %s → %s", lead_id, current, new_value,
                extra={'clinic_id': clinic_id})
    return new_value


def set_ai_enabled(lead_id: str, clinic_id: str, value: bool, store: Store = None) -> bool:
    """Explicit, idempotent set (e.g. a switch bound to a known state)."""
    store = store or get_store()
    store.read_lead(lead_id, clinic_id=clinic_id)
    store.set_lead_ai_enabled(lead_id, bool(value))
    logger.info("Lead %s AI set to %s", lead_id, bool(value), extra={'clinic_id': clinic_id})
    return bool(value)
