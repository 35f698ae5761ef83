import os
from dataclasses import dataclass
from pathlib import Path

MAX_RETRIES = 5


def env_float(name, default):
    value = os.environ.get(name)
    return float(value) if value else default


@dataclass
class ClientConfig:
    """
    Terminal settings. Read from TERMINAL_* environment variables so the
    same build runs against staging and production backends.
    """

    api_base_url: str = 'http://localhost:8000'
    access_token: str = ''
    queue_path: Path = Path('terminal-queue.sqlite3')
    max_retries: int = MAX_RETRIES
    request_timeout: float = 10.0
    sync_interval: float = 30.0
    health_interval: float = 5.0

    @property
    def health_url(self):
        return f"{self.api_base_url.rstrip('/')}/api/health/"

    @classmethod
    def from_env(cls):
        return cls(
            api_base_url=os.environ.get('TERMINAL_API_BASE_URL', cls.api_base_url),
            access_token=os.environ.get('TERMINAL_ACCESS_TOKEN', ''),
            queue_path=Path(os.environ.get('TERMINAL_QUEUE_PATH', str(cls.queue_path))),
            max_retries=int(os.environ.get('TERMINAL_MAX_RETRIES', MAX_RETRIES)),
            request_timeout=env_float('TERMINAL_REQUEST_TIMEOUT', cls.request_timeout),
            sync_interval=env_float('TERMINAL_SYNC_INTERVAL', cls.sync_interval),
            health_interval=env_float('TERMINAL_HEALTH_INTERVAL', cls.health_interval),
        )
