"""
Order Status State Machine

    pending ──► confirmed ──► preparing ──► ready ──► delivered
       │            │
       └────────────┴──► cancelled

``delivered`` and ``cancelled`` are terminal. Customers may only cancel,
and only from ``pending`` or ``confirmed``; every other edge belongs to
operators.
"""

import enum
from typing import Mapping

from food_delivery.core.exceptions import InvalidTransitionError
from food_delivery.models import OrderStatus


class Actor(str, enum.Enum):
    """Who is asking for the transition."""
    CUSTOMER = "customer"
    OPERATOR = "operator"


_OPERATOR_ONLY = frozenset({Actor.OPERATOR})
_ANYONE = frozenset({Actor.CUSTOMER, Actor.OPERATOR})


class OrderStateMachine:
    """Transition table plus the checks built on it."""

    TRANSITIONS: Mapping[OrderStatus, Mapping[OrderStatus, frozenset]] = {
        OrderStatus.PENDING: {
            OrderStatus.CONFIRMED: _OPERATOR_ONLY,
            OrderStatus.CANCELLED: _ANYONE,
        },
        OrderStatus.CONFIRMED: {
            OrderStatus.PREPARING: _OPERATOR_ONLY,
            OrderStatus.CANCELLED: _ANYONE,
        },
        OrderStatus.PREPARING: {
            OrderStatus.READY: _OPERATOR_ONLY,
        },
        OrderStatus.READY: {
            OrderStatus.DELIVERED: _OPERATOR_ONLY,
        },
        OrderStatus.DELIVERED: {},
        OrderStatus.CANCELLED: {},
    }

    @classmethod
    def allowed_targets(cls, current: OrderStatus, actor: Actor = Actor.OPERATOR) -> list[OrderStatus]:
        return [
            target
            for target, actors in cls.TRANSITIONS[current].items()
            if actor in actors
        ]

    @classmethod
    def is_terminal(cls, status: OrderStatus) -> bool:
        return not cls.TRANSITIONS[status]

    @classmethod
    def can_transition(cls, current: OrderStatus, target: OrderStatus, actor: Actor) -> bool:
        return actor in cls.TRANSITIONS[current].get(target, ())

    @classmethod
    def can_cancel(cls, current: OrderStatus, actor: Actor = Actor.CUSTOMER) -> bool:
        return cls.can_transition(current, OrderStatus.CANCELLED, actor)

    @classmethod
    def check_transition(cls, current: OrderStatus, target: OrderStatus, actor: Actor) -> None:
        """
        Raise ``InvalidTransitionError`` unless ``actor`` may move an order
        from ``current`` to ``target``.
        """
        if cls.can_transition(current, target, actor):
            return

        if cls.is_terminal(current):
            reason = f"order is already {current.value}"
        elif target not in cls.TRANSITIONS[current]:
            reason = f"cannot go from {current.value} to {target.value}"
        else:
            reason = f"{actor.value} may not move an order from {current.value} to {target.value}"

        allowed = [s.value for s in cls.allowed_targets(current, actor)]
        raise InvalidTransitionError(
            f"Invalid status transition: {reason}",
            current_status=current.value,
            target_status=target.value,
            allowed=", ".join(allowed) or "none",
        )
