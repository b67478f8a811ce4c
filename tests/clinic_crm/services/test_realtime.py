"""Tests for clinic_crm.services.realtime — change feed and LiveView merging."""
import json
import pytest
from unittest.mock import MagicMock

from clinic_crm.services.realtime import (
    ChangeEvent,
    LiveView,
    channel_name,
    publish_change,
    subscribe_to_changes,
)


def _event(op, row_id, updated_at=None, **fields):
    row = {'id': row_id, **fields}
    if updated_at is not None:
        row['updated_at'] = updated_at
    return ChangeEvent(op=op, table='leads', row=row)


T1 = '2026-03-01T10:00:00+00:00'
T2 = '2026-03-01T10:05:00+00:00'
T3 = '2026-03-01T10:10:00+00:00'


class FakePubSub:
    """Stand-in for redis PubSub: replays canned messages from listen()."""

    def __init__(self, messages):
        self.messages = messages
        self.subscribed = []
        self.unsubscribed = []
        self.closed = False

    def subscribe(self, channel):
        self.subscribed.append(channel)

    def unsubscribe(self, channel):
        self.unsubscribed.append(channel)

    def close(self):
        self.closed = True

    def listen(self):
        yield from self.messages


# ---------------------------------------------------------------------------
# publish / subscribe
# ---------------------------------------------------------------------------

class TestPublishChange:

    def test_publishes_on_tenant_channel(self, mock_redis):
        publish_change('leads', 'clinic-1', 'insert', {'id': 'l1', 'name': 'Ana'})
        channel, payload = mock_redis.publish.call_args[0]
        assert channel == 'changes:leads:clinic-1'
        assert json.loads(payload) == {'op': 'insert', 'table': 'leads', 'row': {'id': 'l1', 'name': 'Ana'}}

    def test_redis_failure_is_swallowed(self, mock_redis):
        mock_redis.publish.side_effect = ConnectionError('redis down')
        publish_change('leads', 'clinic-1', 'update', {'id': 'l1'})


class TestSubscribeToChanges:

    def test_yields_events_for_channel(self):
        payload = ChangeEvent('update', 'leads', {'id': 'l1'}).to_json()
        pubsub = FakePubSub([
            {'type': 'subscribe', 'data': 1},
            {'type': 'message', 'data': payload},
        ])
        events = list(subscribe_to_changes('leads', 'clinic-1', pubsub=pubsub))
        assert [(e.op, e.row_id) for e in events] == [('update', 'l1')]
        assert pubsub.subscribed == [channel_name('leads', 'clinic-1')]

    def test_malformed_messages_skipped(self):
        good = ChangeEvent('delete', 'leads', {'id': 'l2'}).to_json()
        pubsub = FakePubSub([
            {'type': 'message', 'data': 'not json'},
            {'type': 'message', 'data': json.dumps({'op': 'explode', 'row': {'id': 'x'}})},
            {'type': 'message', 'data': json.dumps({'op': 'update', 'row': {}})},
            {'type': 'message', 'data': good},
        ])
        events = list(subscribe_to_changes('leads', 'clinic-1', pubsub=pubsub))
        assert [e.row_id for e in events] == ['l2']

    def test_unsubscribes_when_consumer_stops(self):
        payload = ChangeEvent('insert', 'leads', {'id': 'l1'}).to_json()
        pubsub = FakePubSub([{'type': 'message', 'data': payload}] * 3)
        stream = subscribe_to_changes('leads', 'clinic-1', pubsub=pubsub)
        next(stream)
        stream.close()
        assert pubsub.unsubscribed == ['changes:leads:clinic-1']
        assert pubsub.closed is True

    def test_uses_redis_pubsub_by_default(self, mock_redis):
        mock_redis.pubsub.return_value = FakePubSub([])
        list(subscribe_to_changes('pipeline_stages', 'c1'))
        mock_redis.pubsub.assert_called_once_with(ignore_subscribe_messages=True)


class TestChangeEventFromJson:

    def test_round_trip_fields(self):
        event = ChangeEvent.from_json(json.dumps({'op': 'insert', 'table': 'leads', 'row': {'id': 'a'}}))
        assert event.op == 'insert'
        assert event.row_id == 'a'

    def test_unknown_op_rejected(self):
        with pytest.raises(ValueError):
            ChangeEvent.from_json(json.dumps({'op': 'upsert', 'row': {'id': 'a'}}))

    def test_missing_id_rejected(self):
        with pytest.raises(ValueError):
            ChangeEvent.from_json(json.dumps({'op': 'insert', 'row': {'name': 'x'}}))


# ---------------------------------------------------------------------------
# LiveView
# ---------------------------------------------------------------------------

class TestLiveView:
    """Merging is by id and version, never by arrival order."""

    def test_insert_adds_row(self):
        view = LiveView()
        assert view.apply(_event('insert', 'l1', T1, name='Ana')) is True
        assert view.get('l1')['name'] == 'Ana'

    def test_duplicate_insert_is_noop(self):
        view = LiveView()
        event = _event('insert', 'l1', T1, name='Ana')
        view.apply(event)
        assert view.apply(event) is False
        assert len(view) == 1

    def test_update_merges_fields(self):
        view = LiveView([{'id': 'l1', 'name': 'Ana', 'stage_id': 's1', 'updated_at': T1}])
        view.apply(_event('update', 'l1', T2, stage_id='s2'))
        assert view.get('l1') == {'id': 'l1', 'name': 'Ana', 'stage_id': 's2', 'updated_at': T2}

    def test_out_of_order_update_ignored(self):
        view = LiveView()
        view.apply(_event('update', 'l1', T2, stage_id='s2'))
        assert view.apply(_event('update', 'l1', T1, stage_id='s1')) is False
        assert view.get('l1')['stage_id'] == 's2'

    def test_delete_removes_row(self):
        view = LiveView([{'id': 's1', 'name': 'Novo', 'updated_at': T1}])
        assert view.apply(_event('delete', 's1', T2)) is True
        assert 's1' not in view

    def test_late_update_after_delete_does_not_resurrect(self):
        view = LiveView([{'id': 's1', 'name': 'Novo', 'updated_at': T1}])
        view.apply(_event('delete', 's1', T3))
        assert view.apply(_event('update', 's1', T2, name='Renamed')) is False
        assert 's1' not in view

    def test_duplicate_delete_is_noop(self):
        view = LiveView([{'id': 's1', 'updated_at': T1}])
        view.apply(_event('delete', 's1', T2))
        assert view.apply(_event('delete', 's1', T2)) is False

    def test_newer_insert_after_delete_restores(self):
        view = LiveView()
        view.apply(_event('delete', 's1', T1))
        assert view.apply(_event('insert', 's1', T2, name='Back')) is True
        assert view.get('s1')['name'] == 'Back'

    def test_naive_and_aware_versions_compare(self):
        """SQLite round-trips drop the offset; both forms are UTC."""
        view = LiveView([{'id': 'l1', 'updated_at': '2026-03-01T10:05:00'}])
        assert view.apply(_event('update', 'l1', T1, name='old')) is False
        assert view.apply(_event('update', 'l1', T3, name='new')) is True

    def test_rows_without_version_overwrite(self):
        view = LiveView([{'id': 'l1', 'name': 'Ana'}])
        view.apply(_event('update', 'l1', name='Bia'))
        assert view.get('l1')['name'] == 'Bia'

    def test_rows_sorted_by_key(self):
        view = LiveView([
            {'id': 'b', 'order': 1},
            {'id': 'a', 'order': 0},
        ])
        assert [r['id'] for r in view.rows(key=lambda s: s['order'])] == ['a', 'b']
