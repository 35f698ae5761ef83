"""
Order lifecycle rules.

Pure functions over (current, requested). They never touch the database and
do not depend on who is asking.
"""
from core_backend.exceptions import InvalidTransitionError

from ..models import Order

S = Order.OrderStatus


class OrderStateMachine:
    # Transitions a caller may request through the order-transition API.
    KITCHEN_TRANSITIONS = {
        S.PENDING: frozenset({S.ACCEPTED, S.CANCELLED}),
        S.ACCEPTED: frozenset({S.PREPARING, S.CANCELLED}),
        S.PREPARING: frozenset({S.SERVED, S.CANCELLED}),
        S.SERVED: frozenset(),
        S.PAID: frozenset(),
        S.CANCELLED: frozenset(),
    }

    # Entered only by closing the bill that carries the order.
    SETTLEMENT_TRANSITIONS = {
        S.SERVED: frozenset({S.PAID}),
    }

    TERMINAL_STATES = frozenset({S.SERVED, S.PAID, S.CANCELLED})

    @classmethod
    def next_states(cls, current):
        return cls.KITCHEN_TRANSITIONS.get(current, frozenset())

    @classmethod
    def can_transition(cls, current, requested) -> bool:
        return requested in cls.next_states(current)

    @classmethod
    def assert_transition(cls, current, requested):
        if not cls.can_transition(current, requested):
            raise InvalidTransitionError(current, requested)

    @classmethod
    def can_settle(cls, current) -> bool:
        return S.PAID in cls.SETTLEMENT_TRANSITIONS.get(current, frozenset())
