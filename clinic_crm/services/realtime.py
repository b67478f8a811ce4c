"""
Realtime change feed over Redis pub/sub.

The store publishes one message per committed row change on
``changes:{table}:{clinic_id}``. Delivery is at-least-once from the caller's
point of view (a retried operation republishes) and subscribers may see
events out of order, so LiveView merges by row id and version instead of
trusting arrival order.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

from clinic_crm.extensions import redis_client as r

logger = logging.getLogger('services.realtime')

OPS = ('insert', 'update', 'delete')


def channel_name(table: str, clinic_id: str) -> str:
    return f'changes:{table}:{clinic_id}'


@dataclass
class ChangeEvent:
    """One row change as seen by a subscriber."""
    op: str
    table: str
    row: Dict[str, Any] = field(default_factory=dict)

    @property
    def row_id(self):
        return self.row.get('id')

    def to_json(self) -> str:
        return json.dumps({'op': self.op, 'table': self.table, 'row': self.row})

    @classmethod
    def from_json(cls, payload) -> 'ChangeEvent':
        data = json.loads(payload)
        op = data.get('op')
        if op not in OPS:
            raise ValueError(f"Unknown change op '{op}'")
        row = data.get('row') or {}
        if 'id' not in row:
            raise ValueError("Change event row has no id")
        return cls(op=op, table=data.get('table', ''), row=row)


def publish_change(table: str, clinic_id: str, op: str, row: Dict[str, Any]):
    """
    Publish a committed change. Never raises: the write already happened,
    and subscribers re-sync from the store on reconnect.
    """
    event = ChangeEvent(op=op, table=table, row=row)
    try:
        r.publish(channel_name(table, clinic_id), event.to_json())
    except Exception:
        logger.warning("Failed to publish %s %s on %s", op, row.get('id'), table,
                       exc_info=True, extra={'clinic_id': clinic_id})


def subscribe_to_changes(table: str, clinic_id: str, pubsub=None) -> Iterator[ChangeEvent]:
    """
    Yield ChangeEvents for one table of one clinic until the caller stops iterating.

    Malformed messages are logged and skipped.
    """
    pubsub = pubsub or r.pubsub(ignore_subscribe_messages=True)
    channel = channel_name(table, clinic_id)
    pubsub.subscribe(channel)
    logger.info("Subscribed to %s", channel, extra={'clinic_id': clinic_id})
    try:
        for message in pubsub.listen():
            if message.get('type') != 'message':
                continue
            try:
                yield ChangeEvent.from_json(message['data'])
            except (ValueError, TypeError, KeyError):
                logger.warning("Skipping malformed change message on %s: %r",
                               channel, message.get('data'), extra={'clinic_id': clinic_id})
    finally:
        pubsub.unsubscribe(channel)
        pubsub.close()


def _version(row: Dict[str, Any]) -> Optional[datetime]:
    value = row.get('updated_at')
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    # SQLite hands back naive timestamps; they are stored as UTC
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class LiveView:
    """
    Local view of one table, kept in sync by applying change events.

    apply() is idempotent and order-tolerant:
      - an event older than the version already held is ignored
      - replaying the same event leaves the view unchanged
      - a delete leaves a tombstone, so a late update carrying an older
        version cannot bring the row back
    Rows without an updated_at fall back to plain overwrite.
    """

    def __init__(self, rows: List[Dict[str, Any]] = None):
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._tombstones: Dict[str, Optional[datetime]] = {}
        for row in rows or []:
            self._rows[row['id']] = dict(row)

    def __len__(self):
        return len(self._rows)

    def __contains__(self, row_id):
        return row_id in self._rows

    def get(self, row_id):
        return self._rows.get(row_id)

    def apply(self, event: ChangeEvent) -> bool:
        """Merge one event. Returns True when the view changed."""
        row_id = event.row_id
        incoming = _version(event.row)

        if row_id in self._tombstones:
            deleted_at = self._tombstones[row_id]
            if deleted_at is None or incoming is None or incoming <= deleted_at:
                return False
            # Re-inserted after the delete with a newer version
            del self._tombstones[row_id]

        current = self._rows.get(row_id)
        if current is not None and incoming is not None:
            held = _version(current)
            if held is not None and incoming < held:
                return False

        if event.op == 'delete':
            self._rows.pop(row_id, None)
            self._tombstones[row_id] = incoming
            return current is not None

        merged = {**current, **event.row} if current else dict(event.row)
        if merged == current:
            return False
        self._rows[row_id] = merged
        return True

    def rows(self, key: Callable[[Dict[str, Any]], Any] = None) -> List[Dict[str, Any]]:
        """Current rows, optionally sorted (e.g. key=lambda s: s['order'])."""
        rows = list(self._rows.values())
        if key is not None:
            rows.sort(key=key)
        return rows
