"""
Offline action queue for restaurant terminals.

Cashier and kitchen terminals keep working through network drops: every
write is queued locally and replayed against the backend's idempotent
endpoints once connectivity returns.
"""
from .actions import ActionStatus, ActionType, QueuedAction
from .config import ClientConfig
from .monitor import ConnectivityMonitor, SyncScheduler
from .queue import OfflineQueue, SyncResult, build_queue
from .store import QueueStore
from .transport import ApiTransport, RejectedActionError, TransportError

__all__ = [
    'ActionStatus',
    'ActionType',
    'ApiTransport',
    'ClientConfig',
    'ConnectivityMonitor',
    'OfflineQueue',
    'QueueStore',
    'QueuedAction',
    'RejectedActionError',
    'SyncResult',
    'SyncScheduler',
    'TransportError',
    'build_queue',
]
