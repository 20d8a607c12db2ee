"""
Order status transitions
Compensation cancels through here, so the conditional cancel and the history
row agree on which statuses can still be cancelled.
"""

from typing import Dict, FrozenSet, List, Optional
import uuid

from orderflow.core.exceptions import ConflictException
from orderflow.models.order import OrderStatus, OrderStatusHistory

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),  # returns
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),  # paid before cancel
    OrderStatus.REFUNDED: frozenset(),
}

class OrderStateMachine:
    """Legal order status moves"""

    def __init__(self, transitions: Optional[Dict[OrderStatus, FrozenSet[OrderStatus]]] = None):
        self.transitions = transitions or ORDER_TRANSITIONS

    def can_transition(self, current_status: OrderStatus, new_status: OrderStatus) -> bool:
        return new_status in self.transitions.get(current_status, frozenset())

    def next_statuses(self, current_status: OrderStatus) -> List[OrderStatus]:
        return sorted(self.transitions.get(current_status, frozenset()), key=lambda status: status.value)

    def is_terminal_state(self, status: OrderStatus) -> bool:
        return not self.transitions.get(status)

    def is_cancellable(self, status: OrderStatus) -> bool:
        return self.can_transition(status, OrderStatus.CANCELLED)

    def cancellable_statuses(self) -> List[OrderStatus]:
        """Statuses a compensating cancel may start from"""
        return [status for status in self.transitions if self.is_cancellable(status)]

    def history_entry(
        self,
        order_id: uuid.UUID,
        previous_status: OrderStatus,
        new_status: OrderStatus,
        reason: str,
        notes: Optional[str] = None
    ) -> OrderStatusHistory:
        """
        Build the history row for a status change

        Args:
            order_id: Order being moved
            previous_status: Status before the change
            new_status: Status after the change
            reason: Short reason shown to operators
            notes: Free text, e.g. the gateway error

        Returns:
            Unsaved OrderStatusHistory

        Raises:
            ConflictException: INVALID_STATUS_TRANSITION for an illegal move
        """
        if not self.can_transition(previous_status, new_status):
            raise ConflictException(
                f"Order cannot move from {previous_status.value} to {new_status.value}",
                error_code="INVALID_STATUS_TRANSITION",
                context={"from": previous_status.value, "to": new_status.value}
            )

        return OrderStatusHistory(
            order_id=order_id,
            status=new_status,
            previous_status=previous_status,
            reason=reason,
            notes=notes,
        )
