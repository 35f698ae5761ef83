"""
Background triggers for OfflineQueue.sync: connectivity edges and a
periodic timer.
"""
import logging
import threading

import requests

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """
    Polls the backend health endpoint. Each offline to online transition
    triggers a sync pass.
    """

    def __init__(self, queue, health_url, interval=5.0, timeout=2.0, session=None):
        self.queue = queue
        self.health_url = health_url
        self.interval = interval
        self.timeout = timeout
        self.session = session or requests.Session()
        self.online = False
        self._stop = threading.Event()
        self._thread = None

    def is_online(self) -> bool:
        return self.online

    def check(self) -> bool:
        """Probe once and update ``online``; syncs on reconnect."""
        try:
            response = self.session.get(self.health_url, timeout=self.timeout)
            reachable = response.ok
        except requests.exceptions.RequestException as e:
            logger.debug(f"Health check failed: {e}")
            reachable = False

        was_online = self.online
        self.online = reachable
        if reachable and not was_online:
            logger.info("Backend reachable again, syncing queued actions")
            try:
                self.queue.sync()
            except Exception:
                logger.exception("Sync after reconnect failed")
        elif was_online and not reachable:
            logger.warning("Backend unreachable, queueing actions locally")
        return reachable

    def _run(self):
        while not self._stop.is_set():
            self.check()
            self._stop.wait(self.interval)

    def start(self):
        if self._thread is None or not self._thread.is_alive():
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name='connectivity-monitor', daemon=True)
            self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + self.timeout)


class SyncScheduler:
    """Calls ``queue.sync()`` every ``interval`` seconds."""

    def __init__(self, queue, interval=30.0):
        self.queue = queue
        self.interval = interval
        self._stop = threading.Event()
        self._thread = None

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.queue.sync()
            except Exception:
                logger.exception("Scheduled sync failed")

    def start(self):
        if self._thread is None or not self._thread.is_alive():
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name='sync-scheduler', daemon=True)
            self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval)
