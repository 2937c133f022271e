"""
Menu Service Abstract Base Class

Defines the interface contract for the menu collaborator. The ordering core
only ever asks for one item's authoritative price and availability; menu
storage and editing live elsewhere.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MenuItem:
    """
    Authoritative view of a menu item at lookup time.

    Attributes:
        id: Menu item reference used in order lines
        name: Display name copied onto the order line
        price: Current unit price (never taken from the client)
        is_available: False when the kitchen has disabled the item
        category: Optional grouping label
    """
    id: str
    name: str
    price: float
    is_available: bool = True
    category: Optional[str] = None


class BaseMenuService(ABC):
    """
    Abstract base class for menu lookups.

    Implementations raise MenuItemNotFoundError for unknown references and
    ServiceUnavailableError when the menu cannot be reached. Availability is
    reported, not enforced; the Order Service decides what to do with it.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g. "mock", "remote")."""
        pass

    @abstractmethod
    async def get_item(self, item_ref: str) -> MenuItem:
        """
        Look up a single menu item.

        Args:
            item_ref: Menu item identifier

        Returns:
            MenuItem: Current price and availability
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
