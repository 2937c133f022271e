"""Shared fixtures for the test suite."""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any

from canteen.core.config import Settings
from canteen.database import build_engine, build_session_factory, init_db
from canteen.models import Order, OrderStatus
from canteen.services.menu.base import MenuItem
from canteen.services.order_store import OrderStore

T0 = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)

TEST_MENU = (
    MenuItem("dosa", "Masala Dosa", 60.0),
    MenuItem("thali", "Veg Thali", 120.0),
    MenuItem("coffee", "Filter Coffee", 20.0),
    MenuItem("samosa", "Samosa", 15.0, is_available=False),
)


def make_settings(tmpdir: str, **overrides: Any) -> Settings:
    """Development settings on a throwaway SQLite file."""
    values: dict[str, Any] = {
        "env_mode": "development",
        "database_url": f"sqlite+aiosqlite:///{os.path.join(tmpdir, 'orders.db')}",
        "realtime_backend": "local",
        "cors_origins": "*",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def build_store(settings: Settings):
    """Create tables and return (engine, session_factory, store)."""
    engine = build_engine(settings)
    await init_db(engine)
    session_factory = build_session_factory(engine)
    return engine, session_factory, OrderStore(session_factory)


def make_order(
    number: str,
    *,
    customer_ref: str = "cust-1",
    status: OrderStatus = OrderStatus.PLACED,
    created_at: datetime = T0,
    total: float = 65.0,
) -> Order:
    return Order(
        order_number=number,
        customer_ref=customer_ref,
        customer_name="Guest User",
        items=[{
            "menu_item_ref": "dosa",
            "name": "Masala Dosa",
            "quantity": 1,
            "unit_price": total - 5.0,
            "subtotal": total - 5.0,
        }],
        subtotal=total - 5.0,
        service_fee=5.0,
        total=total,
        status=status,
        estimated_ready_at=created_at + timedelta(minutes=17),
        created_at=created_at,
        updated_at=created_at,
    )


class FakeSocket:
    """Records frames pushed by the realtime hub."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)
