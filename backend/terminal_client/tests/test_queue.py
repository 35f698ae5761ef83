"""
Offline queue tests against a local SQLite file and an in-memory backend.
"""
import threading
from unittest.mock import MagicMock, patch

import pytest

from terminal_client import ActionStatus, ActionType, ApiTransport, OfflineQueue, QueueStore, QueuedAction
from terminal_client.config import MAX_RETRIES

from .fakes import BlockingBackend, FakeBackend, RejectedActionError, TransportError

pytestmark = pytest.mark.unit

PAYMENT = {'bill_id': 'b-1', 'method': 'CASH', 'amount': '295.00'}


@pytest.fixture
def store(tmp_path):
    return QueueStore(tmp_path / 'queue.sqlite3')


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def online():
    return {'value': False}


@pytest.fixture
def queue(store, backend, online):
    return OfflineQueue(store, backend, is_online=lambda: online['value'])


class TestEnqueue:

    def test_offline_enqueue_is_local(self, queue, backend):
        action = queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)

        assert action.id.startswith('q_')
        assert queue.status() == {'pending': 1, 'syncing': 0, 'failed': 0, 'total': 1}
        assert backend.calls == []

    @pytest.mark.parametrize("action_type, payload", [
        (ActionType.CREATE_ORDER, {'items': [{'menu_item_id': 'm-1', 'quantity': 1}]}),
        (ActionType.ADD_PAYMENT, PAYMENT),
        (ActionType.ADD_BILL_ITEM, {'bill_id': 'b-1', 'menu_item_id': 'm-1', 'quantity': 1}),
        (ActionType.REMOVE_BILL_ITEM, {'bill_id': 'b-1', 'item_id': 7}),
    ])
    def test_keyed_actions_get_idempotency_key(self, queue, store, action_type, payload):
        action = queue.enqueue(action_type, payload)

        assert action.payload['idempotency_key']
        assert store.get(action.id).payload['idempotency_key'] == action.payload['idempotency_key']

    def test_existing_key_kept(self, queue):
        action = queue.enqueue(ActionType.ADD_PAYMENT, {**PAYMENT, 'idempotency_key': 'mine'})

        assert action.payload['idempotency_key'] == 'mine'

    def test_other_actions_not_keyed(self, queue):
        action = queue.enqueue(ActionType.CLOSE_BILL, {'bill_id': 'b-1'})

        assert 'idempotency_key' not in action.payload

    def test_online_enqueue_syncs(self, queue, backend, online):
        online['value'] = True

        queue.enqueue('ADD_PAYMENT', PAYMENT)

        assert len(backend.payments) == 1
        assert queue.status()['total'] == 0

    def test_unknown_type_rejected(self, queue):
        with pytest.raises(ValueError):
            queue.enqueue('SPLIT_BILL', {})

    @pytest.mark.parametrize("action_type, payload, missing", [
        (ActionType.ADD_PAYMENT, {'method': 'CASH', 'amount': '295.00'}, 'bill_id'),
        (ActionType.CLOSE_BILL, {}, 'bill_id'),
        (ActionType.UPDATE_ORDER_STATUS, {'order_id': 'o-1'}, 'status'),
        (ActionType.REMOVE_BILL_ITEM, {'bill_id': 'b-1'}, 'item_id'),
        (ActionType.UPDATE_BILL_DISCOUNT, {'bill_id': 'b-1', 'discount': ''}, 'discount'),
    ])
    def test_incomplete_payload_rejected_before_storing(self, queue, store, online, action_type, payload, missing):
        online['value'] = True

        with pytest.raises(ValueError, match=missing):
            queue.enqueue(action_type, payload)

        assert queue.status()['total'] == 0


class TestSync:

    def test_replays_in_enqueue_order(self, store, backend, online):
        queue = OfflineQueue(store, backend, is_online=lambda: online['value'])
        first = queue.enqueue(ActionType.CREATE_ORDER, {'items': []})
        second = queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)
        third = queue.enqueue(ActionType.CLOSE_BILL, {'bill_id': 'b-1'})
        online['value'] = True

        result = queue.sync()

        assert result.synced == 3
        assert backend.calls == [first.id, second.id, third.id]
        assert queue.status()['total'] == 0

    def test_offline_sync_is_skipped(self, queue, backend):
        queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)

        assert queue.sync().skipped is True
        assert backend.calls == []

    def test_transient_failure_stays_pending(self, queue, store, backend, online):
        action = queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)
        backend.fail_next(TransportError('connection reset'))
        online['value'] = True

        result = queue.sync()

        stored = store.get(action.id)
        assert result.synced == 0
        assert stored.status == ActionStatus.PENDING
        assert stored.retries == 1
        assert stored.error == 'connection reset'
        assert stored.last_attempt is not None

    def test_retry_ceiling(self, queue, store, backend, online):
        action = queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)
        backend.fail_next(*[TransportError('timeout')] * MAX_RETRIES)
        online['value'] = True

        for _ in range(MAX_RETRIES):
            queue.sync()
        result = queue.sync()

        stored = store.get(action.id)
        assert result.failed == 1
        assert stored.status == ActionStatus.FAILED
        assert stored.error == 'Max retries exceeded'
        assert len(backend.calls) == MAX_RETRIES
        assert queue.failed_actions()[0].id == action.id

    def test_rejected_action_fails_immediately(self, queue, store, backend, online):
        action = queue.enqueue(ActionType.UPDATE_BILL_DISCOUNT, {'bill_id': 'b-1', 'discount': '999'})
        backend.fail_next(RejectedActionError('400: Discount exceeds bill subtotal', status_code=400))
        online['value'] = True

        result = queue.sync()

        assert result.failed == 1
        assert store.get(action.id).status == ActionStatus.FAILED

    def test_failure_does_not_block_later_actions(self, queue, backend, online):
        queue.enqueue(ActionType.CLOSE_BILL, {'bill_id': 'b-1'})
        queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)
        backend.fail_next(TransportError('503'))
        online['value'] = True

        result = queue.sync()

        assert (result.synced, result.failed) == (1, 0)
        assert queue.status()['pending'] == 1

    def test_retry_and_clear_failed(self, queue, store, backend, online):
        action = queue.enqueue(ActionType.CLOSE_BILL, {'bill_id': 'b-1'})
        backend.fail_next(RejectedActionError('409: balance outstanding', status_code=409))
        online['value'] = True
        queue.sync()

        assert queue.retry_failed() == 1
        stored = store.get(action.id)
        assert (stored.status, stored.retries, stored.error) == (ActionStatus.PENDING, 0, None)

        backend.fail_next(RejectedActionError('409: balance outstanding', status_code=409))
        queue.sync()
        assert queue.clear_failed() == 1
        assert queue.status()['total'] == 0

    def test_unexpected_error_fails_only_that_action(self, queue, store, backend, online):
        broken = queue.enqueue(ActionType.CLOSE_BILL, {'bill_id': 'b-1'})
        queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)
        backend.fail_next(KeyError('bill_id'))
        online['value'] = True

        result = queue.sync()

        stored = store.get(broken.id)
        assert (result.synced, result.failed) == (1, 1)
        assert stored.status == ActionStatus.FAILED
        assert 'KeyError' in stored.error
        assert queue.status() == {'pending': 0, 'syncing': 0, 'failed': 1, 'total': 1}

    def test_online_enqueue_survives_unexpected_error(self, queue, store, backend, online):
        online['value'] = True
        backend.fail_next(ValueError('Expecting value: line 1 column 1'))

        action = queue.enqueue(ActionType.CLOSE_BILL, {'bill_id': 'b-1'})

        assert store.get(action.id).status == ActionStatus.FAILED

    def test_unmappable_stored_payload_is_failed(self, store, online):
        # Written by an older client without the bill_id check
        legacy = QueuedAction(type=ActionType.CLOSE_BILL, payload={})
        store.add(legacy)
        session = MagicMock()
        session.headers = {}
        queue = OfflineQueue(store, ApiTransport('https://pos.example.com', session=session), is_online=lambda: True)

        result = queue.sync()

        assert result.failed == 1
        assert store.get(legacy.id).status == ActionStatus.FAILED
        session.request.assert_not_called()


class TestNonReentrantSync:

    def test_concurrent_sync_yields_one_payment(self, store, online):
        backend = BlockingBackend()
        queue = OfflineQueue(store, backend, is_online=lambda: online['value'])
        queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)
        online['value'] = True

        results = {}
        worker = threading.Thread(target=lambda: results.setdefault('first', queue.sync()))
        worker.start()
        assert backend.entered.wait(timeout=5)

        results['second'] = queue.sync()
        backend.release.set()
        worker.join(timeout=5)

        assert results['second'].skipped is True
        assert results['first'].synced == 1
        assert len(backend.calls) == 1
        assert len(backend.payments) == 1

    def test_replay_after_crash_is_absorbed(self, store, backend, online):
        queue = OfflineQueue(store, backend, is_online=lambda: online['value'])
        action = queue.enqueue(ActionType.ADD_PAYMENT, PAYMENT)
        online['value'] = True

        original_save = store.save

        def crash_after_accept(saved):
            if saved.status == ActionStatus.COMPLETED:
                raise RuntimeError('power cut')
            original_save(saved)

        # Backend accepts, then the terminal dies before recording it
        with patch.object(store, 'save', side_effect=crash_after_accept):
            with pytest.raises(RuntimeError):
                queue.sync()
        assert store.get(action.id).status == ActionStatus.SYNCING

        restarted = OfflineQueue(store, backend, is_online=lambda: True)
        result = restarted.sync()

        assert result.synced == 1
        assert len(backend.calls) == 2
        assert len(backend.payments) == 1


class TestStartupAndListeners:

    def test_syncing_actions_recovered_at_startup(self, store, backend):
        stuck = QueuedAction(type=ActionType.ADD_PAYMENT, payload=PAYMENT, status=ActionStatus.SYNCING)
        store.add(stuck)

        OfflineQueue(store, backend, is_online=lambda: False)

        assert store.get(stuck.id).status == ActionStatus.PENDING

    def test_listener_receives_result(self, queue, online):
        seen = []
        queue.on_sync(seen.append)
        queue.enqueue(ActionType.CLOSE_BILL, {'bill_id': 'b-1'})
        online['value'] = True

        queue.sync()

        assert seen[0].synced == 1

    def test_listener_errors_do_not_propagate(self, queue, online):
        broken = MagicMock(side_effect=RuntimeError('ui gone'))
        queue.on_sync(broken)
        online['value'] = True

        result = queue.sync()

        broken.assert_called_once_with(result)

    def test_unsubscribe(self, queue, online):
        listener = MagicMock()
        unsubscribe = queue.on_sync(listener)
        unsubscribe()
        online['value'] = True

        queue.sync()

        listener.assert_not_called()

    def test_completed_leftovers_dropped_at_startup(self, store, backend):
        done = QueuedAction(type=ActionType.CLOSE_BILL, payload={'bill_id': 'b-1'}, status=ActionStatus.COMPLETED)
        store.add(done)

        OfflineQueue(store, backend, is_online=lambda: False)

        assert store.get(done.id) is None
