"""
Order Store

The only writer of order rows. Every method runs in its own session and
transaction obtained from the injected session factory.

Status changes go through transition_status(), a conditional UPDATE keyed on
the caller's expected current status. The database decides the race: of two
callers holding the same expectation exactly one updates a row, the other
updates none and receives ConflictError. No in-process lock is involved, so
the guarantee holds across server processes.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from canteen.core.exceptions import (
    ConflictError,
    NotFoundError,
    OrderNumberConflictError,
    ServiceUnavailableError,
)
from canteen.models import Order, OrderStatus

logger = logging.getLogger(__name__)


@dataclass
class OrderPage:
    """One page of a listing plus pagination metadata."""
    items: list[Order]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class OrderStore:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create(self, order: Order) -> Order:
        """
        Insert a new order.

        Raises:
            OrderNumberConflictError: order_number already taken
            ServiceUnavailableError: database unreachable
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(order)
        except IntegrityError as e:
            logger.warning(f"Order number {order.order_number} already taken")
            raise OrderNumberConflictError(
                f"Order number {order.order_number} already exists",
                details={"order_number": order.order_number},
                cause=e,
            ) from e
        except OperationalError as e:
            raise ServiceUnavailableError("Order store unavailable", cause=e) from e

        logger.info(f"Order {order.order_number} stored (id={order.id})")
        return order

    async def transition_status(
        self,
        order_id: str,
        expected: OrderStatus,
        next_status: OrderStatus,
        now: datetime,
    ) -> Order:
        """
        Compare-and-set the status of an active order.

        Raises:
            NotFoundError: no active order with this id
            ConflictError: stored status differs from `expected`
        """
        values = {"status": next_status, "updated_at": now}
        if next_status == OrderStatus.COMPLETED:
            values["completed_at"] = now

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Order)
                        .where(
                            Order.id == order_id,
                            Order.status == expected,
                            Order.is_active.is_(True),
                        )
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    order = await session.get(Order, order_id)
        except OperationalError as e:
            raise ServiceUnavailableError("Order store unavailable", cause=e) from e

        if result.rowcount == 1:
            logger.info(
                f"Order {order.order_number}: {OrderStatus(expected).value} -> "
                f"{OrderStatus(next_status).value}"
            )
            return order

        if order is None or not order.is_active:
            raise NotFoundError(f"Order {order_id} not found", details={"id": order_id})

        logger.info(
            f"Order {order.order_number}: lost status race "
            f"(expected {OrderStatus(expected).value}, found {order.status.value})"
        )
        raise ConflictError(
            f"Order {order.order_number} is no longer {OrderStatus(expected).value}",
            details={
                "order_number": order.order_number,
                "expected": OrderStatus(expected).value,
                "current": order.status.value,
            },
        )

    async def deactivate(self, order_id: str, now: datetime) -> Order:
        """Soft-delete an order. The row is kept."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Order)
                        .where(Order.id == order_id, Order.is_active.is_(True))
                        .values(is_active=False, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    order = await session.get(Order, order_id)
        except OperationalError as e:
            raise ServiceUnavailableError("Order store unavailable", cause=e) from e

        if result.rowcount != 1:
            raise NotFoundError(f"Order {order_id} not found", details={"id": order_id})
        logger.info(f"Order {order.order_number} deactivated")
        return order

    # =========================================================================
    # READS
    # =========================================================================

    async def find_by_id_or_number(self, token: str) -> Order:
        """
        Look up an active order by opaque id or order number.

        Raises:
            NotFoundError: nothing matches
        """
        query = select(Order).where(
            or_(Order.id == token, Order.order_number == token.upper()),
            Order.is_active.is_(True),
        )
        try:
            async with self._session_factory() as session:
                order = (await session.execute(query)).scalar_one_or_none()
        except OperationalError as e:
            raise ServiceUnavailableError("Order store unavailable", cause=e) from e

        if order is None:
            raise NotFoundError(f"Order {token} not found", details={"token": token})
        return order

    async def latest_active(self) -> Order:
        """Most recently created active order."""
        query = (
            select(Order)
            .where(Order.is_active.is_(True))
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                order = (await session.execute(query)).scalar_one_or_none()
        except OperationalError as e:
            raise ServiceUnavailableError("Order store unavailable", cause=e) from e

        if order is None:
            raise NotFoundError("No orders found")
        return order

    async def list(
        self,
        status: Optional[OrderStatus] = None,
        customer_ref: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> OrderPage:
        """Active orders, newest first."""
        conditions = [Order.is_active.is_(True)]
        if status is not None:
            conditions.append(Order.status == status)
        if customer_ref is not None:
            conditions.append(Order.customer_ref == customer_ref)

        query = (
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count(Order.id)).where(*conditions)

        try:
            async with self._session_factory() as session:
                total = (await session.execute(count_query)).scalar() or 0
                orders = list((await session.execute(query)).scalars().all())
        except OperationalError as e:
            raise ServiceUnavailableError("Order store unavailable", cause=e) from e

        return OrderPage(items=orders, total=total, page=page, limit=limit)

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))
