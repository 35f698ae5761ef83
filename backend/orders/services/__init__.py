"""
Orders service layer.
"""
from .state_machine import OrderStateMachine
from .order_service import OrderService
from .creation_service import OrderCreationService, OrderCreationResult

__all__ = [
    'OrderStateMachine',
    'OrderService',
    'OrderCreationService',
    'OrderCreationResult',
]
