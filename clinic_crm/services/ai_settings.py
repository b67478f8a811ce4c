"""
Clinic AI settings — read with defaults, validated partial updates, and the
operating-hours check the assistant uses before replying.
"""
import logging
import re
from datetime import datetime, time
from typing import Any, Dict

from clinic_crm.config import AI_OPERATING_MODES
from clinic_crm.errors import ValidationError
from clinic_crm.services.store import Store, get_store

logger = logging.getLogger('services.ai_settings')

# Shown before a clinic ever saves the form; also fills NULL columns.
DEFAULT_AI_SETTINGS = {
    'ai_active_for_all_new_leads': False,
    'ai_active_for_ad_leads_only': False,
    'ai_chat_suggestions_active': False,
    'ai_business_hours_start_weekday': '08:00',
    'ai_business_hours_end_weekday': '18:00',
    'ai_active_saturday': False,
    'ai_saturday_hours_start': '08:00',
    'ai_saturday_hours_end': '12:00',
    'ai_active_sunday': False,
    'ai_sunday_hours_start': '08:00',
    'ai_sunday_hours_end': '12:00',
    'ai_operating_mode': '24/7',
    'ai_name': '',
    'ai_clinica_prompt': '',
    'ai_restricted_topics_prompt': '',
    'admin_prompt': '',
}

BOOL_FIELDS = {
    'ai_active_for_all_new_leads',
    'ai_active_for_ad_leads_only',
    'ai_chat_suggestions_active',
    'ai_active_saturday',
    'ai_active_sunday',
}

TIME_FIELDS = {
    'ai_business_hours_start_weekday',
    'ai_business_hours_end_weekday',
    'ai_saturday_hours_start',
    'ai_saturday_hours_end',
    'ai_sunday_hours_start',
    'ai_sunday_hours_end',
}

# (start, end) pairs checked for start < end after merging
TIME_WINDOWS = [
    ('ai_business_hours_start_weekday', 'ai_business_hours_end_weekday'),
    ('ai_saturday_hours_start', 'ai_saturday_hours_end'),
    ('ai_sunday_hours_start', 'ai_sunday_hours_end'),
]

_HHMM = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


def _settings_from_clinic(clinic) -> Dict[str, Any]:
    settings = {}
    for key, default in DEFAULT_AI_SETTINGS.items():
        value = getattr(clinic, key)
        settings[key] = default if value is None else value
    return settings


def validate_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Check a partial settings payload. Returns the cleaned dict."""
    if not isinstance(changes, dict):
        raise ValidationError("Settings payload must be an object")

    unknown = sorted(set(changes) - set(DEFAULT_AI_SETTINGS))
    if unknown:
        raise ValidationError(f"Unknown setting(s): {', '.join(unknown)}")

    cleaned = {}
    for key, value in changes.items():
        if key in BOOL_FIELDS:
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be true or false")
        elif key in TIME_FIELDS:
            if not isinstance(value, str) or not _HHMM.match(value):
                raise ValidationError(f"{key} must be a HH:MM time")
        elif key == 'ai_operating_mode':
            if value not in AI_OPERATING_MODES:
                raise ValidationError(f"ai_operating_mode must be one of {AI_OPERATING_MODES}")
        else:
            if value is None:
                value = ''
            if not isinstance(value, str):
                raise ValidationError(f"{key} must be text")
        cleaned[key] = value
    return cleaned


def get_ai_settings(clinic_id: str, store: Store = None) -> Dict[str, Any]:
    store = store or get_store()
    return _settings_from_clinic(store.read_clinic(clinic_id))


def update_ai_settings(clinic_id: str, changes: Dict[str, Any], store: Store = None) -> Dict[str, Any]:
    """Validate and save a partial update; returns the full merged settings."""
    store = store or get_store()
    cleaned = validate_changes(changes)

    merged = {**get_ai_settings(clinic_id, store=store), **cleaned}
    for start_key, end_key in TIME_WINDOWS:
        if _parse_hhmm(merged[start_key]) >= _parse_hhmm(merged[end_key]):
            raise ValidationError(f"{start_key} must be earlier than {end_key}")

    if cleaned:
        store.update_clinic(clinic_id, cleaned)
        logger.info("Updated AI settings: %s", ', '.join(sorted(cleaned)),
                    extra={'clinic_id': clinic_id})
    return merged


def is_within_operating_hours(settings: Dict[str, Any], when: datetime) -> bool:
    """
    Whether the assistant should be answering at `when` (clinic local time).

    24/7 mode is always on. Business-hours mode uses the weekday window
    Monday-Friday and the Saturday/Sunday windows only when those days are
    switched on. Windows include their start minute and exclude their end.
    """
    if settings.get('ai_operating_mode', '24/7') != 'horario_comercial':
        return True

    weekday = when.weekday()
    if weekday == 5:
        if not settings.get('ai_active_saturday'):
            return False
        start, end = settings['ai_saturday_hours_start'], settings['ai_saturday_hours_end']
    elif weekday == 6:
        if not settings.get('ai_active_sunday'):
            return False
        start, end = settings['ai_sunday_hours_start'], settings['ai_sunday_hours_end']
    else:
        start = settings['ai_business_hours_start_weekday']
        end = settings['ai_business_hours_end_weekday']

    now = when.time().replace(second=0, microsecond=0)
    return _parse_hhmm(start) <= now < _parse_hhmm(end)
