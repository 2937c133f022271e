"""
Tracking Resolver

Public order lookup for customer displays. Accepts either the opaque id or
the human-readable order number, as typed by a person: surrounding
whitespace and a leading '#' are ignored, case does not matter.

Without a token the most recent active order is returned. That answer is a
best-effort convenience and is flagged as such to the caller.
"""

from dataclasses import dataclass
from typing import Optional

from canteen.models import Order
from canteen.services.order_store import OrderStore


@dataclass(frozen=True)
class TrackingResult:
    order: Order
    best_effort: bool = False


def normalize_token(token: Optional[str]) -> str:
    return (token or "").strip().lstrip("#").strip()


class TrackingResolver:

    def __init__(self, store: OrderStore):
        self.store = store

    async def resolve(self, token: Optional[str] = None) -> TrackingResult:
        """
        Raises:
            NotFoundError: Nothing matches, or there are no orders at all
        """
        token = normalize_token(token)
        if not token:
            return TrackingResult(order=await self.store.latest_active(), best_effort=True)
        return TrackingResult(order=await self.store.find_by_id_or_number(token))
