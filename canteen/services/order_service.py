"""
Order Service

Business operations on orders: placing, moving through the lifecycle,
cancelling and soft-deleting. Coordinates the menu, the order number
generator, the store, the status machine and the realtime hub.

Broadcasts happen strictly after the store has committed, and a broadcast
failure never undoes a committed order. Subscribers that missed an event
recover through the tracking lookup.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from canteen.core.config import Settings
from canteen.core.exceptions import (
    ConflictError,
    ForbiddenError,
    ItemUnavailableError,
    OrderNumberConflictError,
    ValidationError,
)
from canteen.models import Order, OrderStatus, PaymentMethod, PaymentStatus, utcnow
from canteen.schemas import order_snapshot
from canteen.services.auth.base import Principal, Role
from canteen.services.menu.base import BaseMenuService
from canteen.services.order_numbers import BaseOrderNumberGenerator
from canteen.services.order_store import OrderStore
from canteen.services.realtime.hub import RealtimeHub
from canteen.services.status_machine import INITIAL_STATUS, StatusMachine

logger = logging.getLogger(__name__)

EVENT_NEW_ORDER = "new-order"
EVENT_STATUS_UPDATED = "order-status-updated"

TOPIC_STAFF = "staff"
TOPIC_CUSTOMER = "customer"
BROADCAST_TOPICS = (TOPIC_STAFF, TOPIC_CUSTOMER)


@dataclass(frozen=True)
class OrderLine:
    """A requested line: which item and how many."""
    menu_item_ref: str
    quantity: int


def calculate_order_totals(lines: list[dict[str, Any]], service_fee: float) -> dict[str, float]:
    """Calculate order subtotal, fee and total."""
    subtotal = round(sum(line["subtotal"] for line in lines), 2)
    total = round(subtotal + service_fee, 2)

    return {
        "subtotal": subtotal,
        "service_fee": round(service_fee, 2),
        "total": total,
    }


class OrderService:
    """
    Example:
        >>> order = await service.place_order(
        ...     "cust-1", "Asha", [OrderLine("masala_dosa", 2)]
        ... )
        >>> order.order_number
        'MRC000001'
    """

    def __init__(
        self,
        store: OrderStore,
        menu: BaseMenuService,
        numbers: BaseOrderNumberGenerator,
        hub: RealtimeHub,
        machine: StatusMachine,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.menu = menu
        self.numbers = numbers
        self.hub = hub
        self.machine = machine
        self.settings = settings
        self._clock = clock

    # =========================================================================
    # PLACING ORDERS
    # =========================================================================

    def _validate(
        self,
        customer_ref: str,
        lines: list[OrderLine],
        special_instructions: Optional[str],
    ) -> None:
        if not customer_ref or not customer_ref.strip():
            raise ValidationError("Customer reference is required")
        if not lines:
            raise ValidationError("Order must contain at least one item")
        for line in lines:
            if not line.menu_item_ref:
                raise ValidationError("Every item needs a menu item reference")
            if line.quantity < 1:
                raise ValidationError(
                    f"Quantity must be at least 1 (got {line.quantity} for {line.menu_item_ref})",
                    details={"menu_item_ref": line.menu_item_ref, "quantity": line.quantity},
                )
        limit = self.settings.special_instructions_max_length
        if special_instructions is not None and len(special_instructions) > limit:
            raise ValidationError(
                f"Special instructions cannot exceed {limit} characters",
                details={"max_length": limit},
            )

    async def _price_lines(self, lines: list[OrderLine]) -> list[dict[str, Any]]:
        priced = []
        for line in lines:
            item = await self.menu.get_item(line.menu_item_ref)
            if not item.is_available:
                raise ItemUnavailableError(
                    f"{item.name} is currently unavailable",
                    details={"menu_item_ref": line.menu_item_ref},
                )
            priced.append({
                "menu_item_ref": item.id,
                "name": item.name,
                "quantity": line.quantity,
                "unit_price": round(item.price, 2),
                "subtotal": round(item.price * line.quantity, 2),
            })
        return priced

    def estimate_ready_at(self, line_count: int, now: datetime) -> datetime:
        minutes = self.settings.base_prep_minutes + self.settings.per_item_prep_minutes * line_count
        return now + timedelta(minutes=minutes)

    async def place_order(
        self,
        customer_ref: str,
        customer_name: Optional[str],
        lines: Iterable[OrderLine],
        special_instructions: Optional[str] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> Order:
        """
        Validate, price, number, persist and announce a new order.

        Raises:
            ValidationError: Empty order, bad quantity or over-long instructions
            MenuItemNotFoundError: A line references an unknown menu item
            ItemUnavailableError: A line references a disabled menu item
            ConflictError: Order number collided twice in a row
            ServiceUnavailableError: Store or menu unreachable
        """
        lines = list(lines)
        self._validate(customer_ref, lines, special_instructions)

        priced = await self._price_lines(lines)
        totals = calculate_order_totals(priced, self.settings.service_fee)
        name = (customer_name or "").strip() or self.settings.default_customer_name

        order = None
        for attempt in range(2):
            now = self._clock()
            candidate = Order(
                order_number=await self.numbers.next(),
                customer_ref=customer_ref,
                customer_name=name,
                items=priced,
                special_instructions=special_instructions,
                subtotal=totals["subtotal"],
                service_fee=totals["service_fee"],
                total=totals["total"],
                payment_status=PaymentStatus.PENDING,
                payment_method=PaymentMethod(payment_method),
                status=INITIAL_STATUS,
                estimated_ready_at=self.estimate_ready_at(len(priced), now),
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            try:
                order = await self.store.create(candidate)
                break
            except OrderNumberConflictError as e:
                if attempt == 1:
                    raise ConflictError(
                        "Could not allocate a unique order number; please retry",
                        details=e.details,
                        cause=e,
                    ) from e
                logger.warning(f"Order number {candidate.order_number} collided; retrying")

        logger.info(
            f"Order {order.order_number} placed by {customer_ref}: "
            f"{len(priced)} lines, total {order.total:.2f}"
        )
        await self._broadcast(EVENT_NEW_ORDER, order)
        return order

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def update_status(
        self,
        order_ref: str,
        requested: OrderStatus,
        principal: Principal,
    ) -> Order:
        """
        Move an order along its lifecycle.

        Raises:
            ForbiddenError: Customer asked for anything but cancelling their own order
            NotFoundError: Unknown order
            InvalidTransitionError: Edge not in the lifecycle table
            ConflictError: Another request changed the status first
        """
        requested = OrderStatus(requested)
        if principal.role == Role.CUSTOMER and requested != OrderStatus.CANCELLED:
            raise ForbiddenError("Customers may only cancel orders")

        order = await self.store.find_by_id_or_number(order_ref)
        if not principal.is_elevated and order.customer_ref != principal.principal_id:
            raise ForbiddenError(f"Order {order.order_number} belongs to another customer")

        next_status = self.machine.transition(order.status, requested)
        updated = await self.store.transition_status(
            order.id, order.status, next_status, self._clock()
        )

        await self._broadcast(EVENT_STATUS_UPDATED, updated)
        return updated

    async def cancel(self, order_ref: str, principal: Principal) -> Order:
        return await self.update_status(order_ref, OrderStatus.CANCELLED, principal)

    async def deactivate(self, order_ref: str, principal: Principal) -> Order:
        """Soft-delete an order. Admins only; the row is kept."""
        if principal.role != Role.ADMIN:
            raise ForbiddenError("Only admins may delete orders")
        order = await self.store.find_by_id_or_number(order_ref)
        return await self.store.deactivate(order.id, self._clock())

    # =========================================================================
    # BROADCASTING
    # =========================================================================

    async def _broadcast(self, event: str, order: Order) -> None:
        snapshot = order_snapshot(order)
        for topic in BROADCAST_TOPICS:
            try:
                await self.hub.publish(topic, event, snapshot)
            except Exception as e:
                logger.error(
                    f"Failed to publish {event} for order {order.order_number} to {topic}: {e}"
                )
