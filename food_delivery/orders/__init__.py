"""
Order workflow: cart pricing, atomic persistence, and the status
state machine consulted by every path that changes an order's status.
"""

from food_delivery.orders.state_machine import Actor, OrderStateMachine
from food_delivery.orders.service import CartLine, OrderService

__all__ = ["Actor", "OrderStateMachine", "CartLine", "OrderService"]
