"""
Offline action queue.

``enqueue`` checks the payload and stores it locally, online or not.
``sync`` replays PENDING actions in enqueue order against the backend. A
crash between the backend accepting an action and the local delete means
the action is replayed on the next pass; order creation, payments and bill
item edits carry idempotency keys, so the backend absorbs the replay
instead of creating a duplicate.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, List

from .actions import KEYED_ACTIONS, ActionStatus, ActionType, QueuedAction, missing_fields, now_ms
from .config import MAX_RETRIES
from .store import QueueStore
from .transport import ApiTransport, RejectedActionError, TransportError

logger = logging.getLogger(__name__)

MAX_RETRIES_ERROR = 'Max retries exceeded'


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    skipped: bool = False
    errors: List[str] = field(default_factory=list)


class OfflineQueue:

    def __init__(self, store, transport, is_online: Callable[[], bool] = lambda: True,
                 max_retries=MAX_RETRIES, sync_on_enqueue=True):
        self.store = store
        self.transport = transport
        self.is_online = is_online
        self.max_retries = max_retries
        self.sync_on_enqueue = sync_on_enqueue
        self._sync_lock = threading.Lock()
        self._listeners = []

        # A pass interrupted by a crash leaves actions SYNCING forever otherwise
        recovered = self.store.reset_status(ActionStatus.SYNCING, ActionStatus.PENDING)
        if recovered:
            logger.warning(f"Recovered {recovered} actions left SYNCING by an interrupted sync")
        # Accepted by the backend already; only the local delete was lost
        self.store.delete_status(ActionStatus.COMPLETED)

    def enqueue(self, action_type, payload) -> QueuedAction:
        action_type = ActionType(action_type)
        payload = dict(payload)
        missing = missing_fields(action_type, payload)
        if missing:
            raise ValueError(f"{action_type.value} payload is missing {', '.join(missing)}")
        if action_type in KEYED_ACTIONS and not payload.get('idempotency_key'):
            payload['idempotency_key'] = str(uuid.uuid4())

        action = QueuedAction(type=action_type, payload=payload)
        self.store.add(action)
        logger.info(f"Queued {action_type.value} as {action.id}")

        if self.sync_on_enqueue and self.is_online():
            self.sync()
        return action

    def sync(self) -> SyncResult:
        """
        One pass over PENDING actions. Returns immediately with
        ``skipped=True`` when another pass is running or the terminal is
        offline.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Sync already in progress, skipping")
            return SyncResult(skipped=True)

        try:
            if not self.is_online():
                return SyncResult(skipped=True)
            result = self._sync_pending()
        finally:
            self._sync_lock.release()

        if result.synced or result.failed:
            logger.info(f"Sync pass: {result.synced} synced, {result.failed} failed")
        self._notify(result)
        return result

    def _sync_pending(self) -> SyncResult:
        result = SyncResult()
        for action in self.store.by_status(ActionStatus.PENDING):
            if action.retries >= self.max_retries:
                self._mark_failed(action, MAX_RETRIES_ERROR)
                result.failed += 1
                continue

            action.status = ActionStatus.SYNCING
            action.retries += 1
            action.last_attempt = now_ms()
            self.store.save(action)

            try:
                self.transport.execute(action)
            except RejectedActionError as e:
                self._mark_failed(action, str(e))
                result.failed += 1
                result.errors.append(f"{action.id}: {e}")
                continue
            except TransportError as e:
                action.status = ActionStatus.PENDING
                action.error = str(e)
                self.store.save(action)
                result.errors.append(f"{action.id}: {e}")
                logger.warning(f"Failed to sync {action.id} (attempt {action.retries}): {e}")
                continue
            except Exception as e:
                # Replaying a payload the transport cannot map gives the same error every time
                logger.exception(f"Unexpected error syncing {action.id}")
                self._mark_failed(action, f"Unexpected error: {e!r}")
                result.failed += 1
                result.errors.append(f"{action.id}: {e!r}")
                continue

            action.status = ActionStatus.COMPLETED
            self.store.save(action)
            self.store.delete(action.id)
            result.synced += 1
        return result

    def _mark_failed(self, action, error):
        action.status = ActionStatus.FAILED
        action.error = error
        action.last_attempt = now_ms()
        self.store.save(action)
        logger.error(f"Action {action.id} ({action.type.value}) failed: {error}")

    def status(self) -> dict:
        counts = self.store.counts()
        return {
            'pending': counts.get(ActionStatus.PENDING.value, 0),
            'syncing': counts.get(ActionStatus.SYNCING.value, 0),
            'failed': counts.get(ActionStatus.FAILED.value, 0),
            'total': sum(counts.values()),
        }

    def failed_actions(self):
        return self.store.by_status(ActionStatus.FAILED)

    def retry_failed(self) -> int:
        """Give FAILED actions a fresh set of attempts."""
        count = self.store.reset_status(ActionStatus.FAILED, ActionStatus.PENDING, reset_retries=True)
        if count:
            logger.info(f"Requeued {count} failed actions")
        return count

    def clear_failed(self) -> int:
        return self.store.delete_status(ActionStatus.FAILED)

    def on_sync(self, listener) -> Callable[[], None]:
        """Register ``listener(SyncResult)``; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, result):
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Sync listener raised")


def build_queue(config, is_online=None) -> OfflineQueue:
    """Wire a queue from ClientConfig: SQLite store at ``queue_path`` plus the REST transport."""
    transport = ApiTransport(config.api_base_url, config.access_token, timeout=config.request_timeout)
    return OfflineQueue(
        QueueStore(config.queue_path),
        transport,
        is_online=is_online or (lambda: True),
        max_retries=config.max_retries,
    )
