"""
Column helpers shared by the models.
"""
import uuid
from datetime import datetime, timezone


def new_id():
    """Opaque row id."""
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


def isoformat(value):
    """Serialize a date/datetime column for JSON, passing None through."""
    return value.isoformat() if value is not None else None
