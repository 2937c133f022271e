"""Tests for OrderService: placement, lifecycle, permissions and broadcasting."""
from __future__ import annotations

import asyncio
import tempfile
import unittest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from canteen.core.exceptions import (
    ConflictError,
    ForbiddenError,
    HubUnavailableError,
    InvalidTransitionError,
    ItemUnavailableError,
    MenuItemNotFoundError,
    NotFoundError,
    ValidationError,
)
from canteen.models import OrderStatus, PaymentMethod, PaymentStatus
from canteen.services.auth.base import Principal, Role
from canteen.services.menu.base import MenuItem
from canteen.services.menu.mock import MockMenuService
from canteen.services.order_numbers import SequenceOrderNumberGenerator
from canteen.services.order_service import OrderLine, OrderService, calculate_order_totals
from canteen.services.realtime.hub import RealtimeHub
from canteen.services.status_machine import StatusMachine
from canteen.services.tracking import TrackingResolver

from tests.support import T0, TEST_MENU, FakeSocket, build_store, make_order, make_settings

ALICE = Principal("alice", Role.CUSTOMER)
BOB = Principal("bob", Role.CUSTOMER)
STAFF = Principal("cook-1", Role.STAFF)
ADMIN = Principal("boss", Role.ADMIN)


class ServiceTestCase(unittest.IsolatedAsyncioTestCase):
    menu_items = TEST_MENU

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.settings = make_settings(self._tmp.name)
        self.engine, self.session_factory, self.store = await build_store(self.settings)
        self.numbers = SequenceOrderNumberGenerator(self.session_factory)
        self.hub = MagicMock()
        self.hub.publish = AsyncMock(return_value=1)
        self.menu = MockMenuService(self.menu_items)
        self.service = OrderService(
            self.store,
            self.menu,
            self.numbers,
            self.hub,
            StatusMachine(),
            self.settings,
            clock=lambda: T0,
        )

    async def asyncTearDown(self):
        await self.engine.dispose()
        self._tmp.cleanup()

    def published(self):
        return [(c.args[0], c.args[1]) for c in self.hub.publish.await_args_list]

    async def place(self, principal=ALICE, lines=None, **kwargs):
        lines = lines or [OrderLine("dosa", 1)]
        return await self.service.place_order(principal.principal_id, "Alice", lines, **kwargs)


class TestTotals(unittest.TestCase):
    def test_calculate_order_totals(self):
        lines = [{"subtotal": 200.0}, {"subtotal": 50.0}]
        self.assertEqual(
            calculate_order_totals(lines, 5.0),
            {"subtotal": 250.0, "service_fee": 5.0, "total": 255.0},
        )

    def test_rounding(self):
        totals = calculate_order_totals([{"subtotal": 0.1}, {"subtotal": 0.2}], 0.0)
        self.assertEqual(totals["total"], 0.3)


class TestPlaceOrder(ServiceTestCase):
    menu_items = (MenuItem("a", "Item A", 100.0), MenuItem("b", "Item B", 50.0))

    async def test_prices_come_from_the_menu(self):
        order = await self.service.place_order(
            "alice", "Alice", [OrderLine("a", 2), OrderLine("b", 1)]
        )

        self.assertEqual(order.subtotal, 250.0)
        self.assertEqual(order.service_fee, 5.0)
        self.assertEqual(order.total, 255.0)
        self.assertEqual([line["subtotal"] for line in order.items], [200.0, 50.0])
        self.assertEqual(order.items[0]["name"], "Item A")

    async def test_new_order_defaults(self):
        order = await self.service.place_order("alice", "Alice", [OrderLine("a", 1), OrderLine("b", 1)])

        self.assertEqual(order.order_number, "MRC000001")
        self.assertEqual(order.status, OrderStatus.PLACED)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.payment_method, PaymentMethod.CASH)
        self.assertEqual(order.estimated_ready_at, T0 + timedelta(minutes=19))
        self.assertTrue(order.is_active)

    async def test_blank_name_falls_back_to_default(self):
        order = await self.service.place_order("alice", "   ", [OrderLine("a", 1)])
        self.assertEqual(order.customer_name, "Guest User")

    async def test_new_order_is_broadcast_to_both_topics(self):
        order = await self.service.place_order("alice", None, [OrderLine("a", 1)])

        self.assertEqual(self.published(), [("staff", "new-order"), ("customer", "new-order")])
        snapshot = self.hub.publish.await_args.args[2]
        self.assertEqual(snapshot["order_number"], order.order_number)
        self.assertEqual(snapshot["status"], "placed")

    async def test_numbers_are_sequential(self):
        first = await self.service.place_order("alice", None, [OrderLine("a", 1)])
        second = await self.service.place_order("bob", None, [OrderLine("b", 1)])
        self.assertEqual((first.order_number, second.order_number), ("MRC000001", "MRC000002"))


class TestPlaceOrderRejections(ServiceTestCase):
    async def assertNothingHappened(self):
        self.assertEqual((await self.store.list()).total, 0)
        self.hub.publish.assert_not_awaited()

    async def test_empty_order(self):
        with self.assertRaises(ValidationError):
            await self.service.place_order("alice", "Alice", [])
        await self.assertNothingHappened()
        self.assertEqual(await self.numbers.next(), "MRC000001")

    async def test_zero_quantity(self):
        with self.assertRaises(ValidationError):
            await self.place(lines=[OrderLine("dosa", 0)])
        await self.assertNothingHappened()

    async def test_long_instructions(self):
        with self.assertRaises(ValidationError):
            await self.place(special_instructions="x" * 501)
        await self.assertNothingHappened()

    async def test_unavailable_item(self):
        with self.assertRaises(ItemUnavailableError) as ctx:
            await self.place(lines=[OrderLine("dosa", 1), OrderLine("samosa", 1)])
        self.assertNotIsInstance(ctx.exception, MenuItemNotFoundError)
        self.assertEqual(ctx.exception.http_status, 400)
        await self.assertNothingHappened()

    async def test_unknown_item(self):
        with self.assertRaises(MenuItemNotFoundError) as ctx:
            await self.place(lines=[OrderLine("caviar", 1)])
        self.assertEqual(ctx.exception.http_status, 404)
        await self.assertNothingHappened()

    async def test_item_disabled_after_menu_change(self):
        self.menu.set_availability("dosa", False)
        with self.assertRaises(ItemUnavailableError):
            await self.place()


class TestOrderNumberRetry(ServiceTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        await self.store.create(make_order("MRC000001"))
        self.service.numbers = MagicMock()

    async def test_collision_retries_with_a_fresh_number(self):
        self.service.numbers.next = AsyncMock(side_effect=["MRC000001", "MRC000002"])

        with self.assertLogs("canteen.services.order_service", level="WARNING"):
            order = await self.place()

        self.assertEqual(order.order_number, "MRC000002")

    async def test_second_collision_surfaces_conflict(self):
        self.service.numbers.next = AsyncMock(side_effect=["MRC000001", "MRC000001"])

        with self.assertRaises(ConflictError) as ctx:
            await self.place()
        self.assertIs(type(ctx.exception), ConflictError)
        self.assertEqual(ctx.exception.http_status, 409)
        self.hub.publish.assert_not_awaited()


class TestUpdateStatus(ServiceTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.order = await self.place()
        self.hub.publish.reset_mock()

    async def test_staff_moves_order_forward(self):
        updated = await self.service.update_status(self.order.order_number, OrderStatus.ACCEPTED, STAFF)

        self.assertEqual(updated.status, OrderStatus.ACCEPTED)
        self.assertEqual(
            self.published(),
            [("staff", "order-status-updated"), ("customer", "order-status-updated")],
        )
        self.assertEqual(self.hub.publish.await_args.args[2]["status"], "accepted")

    async def test_lookup_accepts_id(self):
        updated = await self.service.update_status(self.order.id, OrderStatus.ACCEPTED, ADMIN)
        self.assertEqual(updated.status, OrderStatus.ACCEPTED)

    async def test_backward_move_is_rejected_and_changes_nothing(self):
        await self.service.update_status(self.order.id, OrderStatus.ACCEPTED, STAFF)
        await self.service.update_status(self.order.id, OrderStatus.PREPARING, STAFF)
        self.hub.publish.reset_mock()

        with self.assertRaises(InvalidTransitionError):
            await self.service.update_status(self.order.id, OrderStatus.ACCEPTED, STAFF)

        stored = await self.store.find_by_id_or_number(self.order.id)
        self.assertEqual(stored.status, OrderStatus.PREPARING)
        self.hub.publish.assert_not_awaited()

    async def test_terminal_order_cannot_be_cancelled(self):
        for status in (OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED):
            await self.service.update_status(self.order.id, status, STAFF)

        with self.assertRaises(InvalidTransitionError):
            await self.service.cancel(self.order.id, STAFF)

    async def test_customer_cannot_advance(self):
        with self.assertRaises(ForbiddenError):
            await self.service.update_status(self.order.id, OrderStatus.ACCEPTED, ALICE)

    async def test_customer_cancels_own_order(self):
        cancelled = await self.service.cancel(self.order.order_number, ALICE)
        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)

    async def test_customer_cannot_cancel_someone_elses_order(self):
        with self.assertRaises(ForbiddenError):
            await self.service.cancel(self.order.id, BOB)

        stored = await self.store.find_by_id_or_number(self.order.id)
        self.assertEqual(stored.status, OrderStatus.PLACED)

    async def test_unknown_order(self):
        with self.assertRaises(NotFoundError):
            await self.service.update_status("MRC424242", OrderStatus.ACCEPTED, STAFF)

    async def test_lost_race_surfaces_conflict_without_broadcast(self):
        self.service.store = MagicMock(wraps=self.store)
        self.service.store.find_by_id_or_number = AsyncMock(return_value=self.order)
        self.service.store.transition_status = AsyncMock(
            side_effect=ConflictError("Order MRC000001 is no longer placed")
        )

        with self.assertRaises(ConflictError):
            await self.service.update_status(self.order.id, OrderStatus.ACCEPTED, STAFF)
        self.hub.publish.assert_not_awaited()


class TestConcurrency(ServiceTestCase):
    async def test_concurrent_placements_get_distinct_numbers(self):
        orders = await asyncio.gather(*[
            self.service.place_order(f"cust-{i}", None, [OrderLine("coffee", 1)])
            for i in range(15)
        ])

        self.assertEqual(len({o.order_number for o in orders}), 15)
        self.assertEqual((await self.store.list()).total, 15)


class TestRealtimeDelivery(ServiceTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.hub = RealtimeHub(topics=["staff", "customer"])
        self.service.hub = self.hub

    async def asyncTearDown(self):
        await self.hub.close()
        await super().asyncTearDown()

    async def test_each_subscriber_gets_one_update_and_late_joiners_none(self):
        order = await self.place()
        staff_socket, customer_socket, late_socket = FakeSocket(), FakeSocket(), FakeSocket()
        staff = await self.hub.connect(staff_socket)
        customer = await self.hub.connect(customer_socket)
        self.hub.subscribe(staff, "staff")
        self.hub.subscribe(customer, "customer")

        await self.service.update_status(order.id, OrderStatus.ACCEPTED, STAFF)
        late = await self.hub.connect(late_socket)
        self.hub.subscribe(late, "staff")
        for conn in (staff, customer, late):
            await conn.drain()

        for socket, topic in ((staff_socket, "staff"), (customer_socket, "customer")):
            self.assertEqual(len(socket.sent), 1)
            self.assertEqual(socket.sent[0]["event"], "order-status-updated")
            self.assertEqual(socket.sent[0]["topic"], topic)
            self.assertEqual(socket.sent[0]["data"]["status"], "accepted")
        self.assertEqual(late_socket.sent, [])

        tracked = await TrackingResolver(self.store).resolve(order.order_number)
        self.assertEqual(tracked.order.status, OrderStatus.ACCEPTED)


class TestBroadcastFailures(ServiceTestCase):
    async def test_publish_failure_does_not_undo_the_order(self):
        self.hub.publish = AsyncMock(side_effect=HubUnavailableError("redis down"))

        with self.assertLogs("canteen.services.order_service", level="ERROR") as logs:
            order = await self.place()

        stored = await self.store.find_by_id_or_number(order.order_number)
        self.assertEqual(stored.id, order.id)
        self.assertIn(order.order_number, logs.output[0])

    async def test_status_publish_failure_keeps_the_transition(self):
        order = await self.place()
        self.hub.publish = AsyncMock(side_effect=HubUnavailableError("redis down"))

        with self.assertLogs("canteen.services.order_service", level="ERROR"):
            updated = await self.service.update_status(order.id, OrderStatus.ACCEPTED, STAFF)

        self.assertEqual(updated.status, OrderStatus.ACCEPTED)
        stored = await self.store.find_by_id_or_number(order.id)
        self.assertEqual(stored.status, OrderStatus.ACCEPTED)


class TestDeactivate(ServiceTestCase):
    async def test_admin_only(self):
        order = await self.place()
        for principal in (ALICE, STAFF):
            with self.assertRaises(ForbiddenError):
                await self.service.deactivate(order.id, principal)

    async def test_deactivated_order_disappears(self):
        order = await self.place()
        removed = await self.service.deactivate(order.order_number, ADMIN)

        self.assertFalse(removed.is_active)
        with self.assertRaises(NotFoundError):
            await self.store.find_by_id_or_number(order.id)
        self.assertEqual((await self.store.list()).total, 0)


if __name__ == "__main__":
    unittest.main()
