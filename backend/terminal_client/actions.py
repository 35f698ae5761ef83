import json
import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ActionType(str, Enum):
    CREATE_ORDER = 'CREATE_ORDER'
    UPDATE_ORDER_STATUS = 'UPDATE_ORDER_STATUS'
    CREATE_BILL = 'CREATE_BILL'
    ADD_BILL_ITEM = 'ADD_BILL_ITEM'
    REMOVE_BILL_ITEM = 'REMOVE_BILL_ITEM'
    UPDATE_BILL_DISCOUNT = 'UPDATE_BILL_DISCOUNT'
    UPDATE_BILL_SERVICE_CHARGE = 'UPDATE_BILL_SERVICE_CHARGE'
    ADD_PAYMENT = 'ADD_PAYMENT'
    CLOSE_BILL = 'CLOSE_BILL'


class ActionStatus(str, Enum):
    PENDING = 'PENDING'
    SYNCING = 'SYNCING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'


# Actions whose server endpoint deduplicates on an idempotency key
KEYED_ACTIONS = {
    ActionType.CREATE_ORDER,
    ActionType.ADD_PAYMENT,
    ActionType.ADD_BILL_ITEM,
    ActionType.REMOVE_BILL_ITEM,
}

# Payload keys the transport needs to build each request
REQUIRED_FIELDS = {
    ActionType.CREATE_ORDER: ('items',),
    ActionType.UPDATE_ORDER_STATUS: ('order_id', 'status'),
    ActionType.CREATE_BILL: (),
    ActionType.ADD_BILL_ITEM: ('bill_id',),
    ActionType.REMOVE_BILL_ITEM: ('bill_id', 'item_id'),
    ActionType.UPDATE_BILL_DISCOUNT: ('bill_id', 'discount'),
    ActionType.UPDATE_BILL_SERVICE_CHARGE: ('bill_id', 'service_charge'),
    ActionType.ADD_PAYMENT: ('bill_id', 'method', 'amount'),
    ActionType.CLOSE_BILL: ('bill_id',),
}


def missing_fields(action_type, payload) -> list:
    return [name for name in REQUIRED_FIELDS[ActionType(action_type)] if payload.get(name) in (None, '')]


def now_ms() -> int:
    return int(time.time() * 1000)


def new_action_id(timestamp=None) -> str:
    """q_{epoch ms}_{9 random base36 chars}"""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"q_{timestamp if timestamp is not None else now_ms()}_{suffix}"


@dataclass
class QueuedAction:
    type: ActionType
    payload: dict
    id: str = ''
    timestamp: int = field(default_factory=now_ms)
    retries: int = 0
    status: ActionStatus = ActionStatus.PENDING
    error: Optional[str] = None
    last_attempt: Optional[int] = None

    def __post_init__(self):
        self.type = ActionType(self.type)
        self.status = ActionStatus(self.status)
        if not self.id:
            self.id = new_action_id(self.timestamp)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.type.value,
            json.dumps(self.payload),
            self.timestamp,
            self.retries,
            self.status.value,
            self.error,
            self.last_attempt,
        )

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            type=row['type'],
            payload=json.loads(row['payload']),
            timestamp=row['timestamp'],
            retries=row['retries'],
            status=row['status'],
            error=row['error'],
            last_attempt=row['last_attempt'],
        )
