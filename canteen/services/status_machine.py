"""
Order Status Machine

The single authoritative table of legal order status edges. Creation uses
INITIAL_STATUS, every status update is validated here, and the same table is
served to clients through GET /api/order-statuses.

Forward flow:
    placed -> accepted -> preparing -> ready -> completed

Any non-terminal state may also move to cancelled. completed and cancelled
are terminal.
"""

from canteen.core.exceptions import InvalidTransitionError
from canteen.models import OrderStatus

INITIAL_STATUS = OrderStatus.PLACED

FORWARD_FLOW = (
    OrderStatus.PLACED,
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.COMPLETED,
)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


class StatusMachine:
    """
    Stateless validator for status transitions.

    Example:
        >>> StatusMachine().transition(OrderStatus.PLACED, OrderStatus.ACCEPTED)
        <OrderStatus.ACCEPTED: 'accepted'>
    """

    def __init__(self, transitions: dict[OrderStatus, frozenset[OrderStatus]] = ALLOWED_TRANSITIONS):
        self._transitions = transitions

    def allowed_next(self, current: OrderStatus) -> frozenset[OrderStatus]:
        return self._transitions.get(OrderStatus(current), frozenset())

    def can_transition(self, current: OrderStatus, requested: OrderStatus) -> bool:
        return OrderStatus(requested) in self.allowed_next(current)

    def is_terminal(self, status: OrderStatus) -> bool:
        return not self.allowed_next(status)

    def transition(self, current: OrderStatus, requested: OrderStatus) -> OrderStatus:
        """
        Validate a status change.

        Returns:
            OrderStatus: The requested status, when the edge is legal

        Raises:
            InvalidTransitionError: For any edge outside the table
        """
        current = OrderStatus(current)
        requested = OrderStatus(requested)
        if requested not in self.allowed_next(current):
            allowed = sorted(s.value for s in self.allowed_next(current))
            raise InvalidTransitionError(
                f"Cannot move order from {current.value} to {requested.value}",
                details={
                    "current": current.value,
                    "requested": requested.value,
                    "allowed": allowed,
                },
            )
        return requested
