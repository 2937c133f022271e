"""
Mock Menu Service Implementation

In-memory catalogue used in development mode and tests. Availability can be
toggled at runtime to exercise the unavailable-item path.
"""

import logging
from typing import Iterable, Optional

from canteen.core.exceptions import MenuItemNotFoundError
from canteen.services.menu.base import BaseMenuService, MenuItem

logger = logging.getLogger(__name__)


DEFAULT_MENU = (
    MenuItem("chicken_biryani", "Chicken Biryani", 180.0, category="biryani"),
    MenuItem("veg_biryani", "Veg Biryani", 150.0, category="biryani"),
    MenuItem("hakka_noodles", "Hakka Noodles", 120.0, category="chinese"),
    MenuItem("fried_rice", "Fried Rice", 110.0, category="chinese"),
    MenuItem("chicken_burger", "Chicken Burger", 140.0, category="burger"),
    MenuItem("veg_burger", "Veg Burger", 100.0, category="burger"),
    MenuItem("dal_makhani", "Dal Makhani", 120.0, category="north indian"),
    MenuItem("paneer_butter_masala", "Paneer Butter Masala", 160.0, category="north indian"),
    MenuItem("chicken_roll", "Chicken Roll", 80.0, category="rolls"),
    MenuItem("paneer_roll", "Paneer Roll", 70.0, category="rolls"),
    MenuItem("chocolate_cake", "Chocolate Cake", 60.0, category="cake"),
    MenuItem("vanilla_ice_cream", "Vanilla Ice Cream", 40.0, category="ice cream"),
)


class MockMenuService(BaseMenuService):
    """
    Dictionary-backed menu.

    Example:
        >>> menu = MockMenuService([MenuItem("a", "Item A", 100.0)])
        >>> (await menu.get_item("a")).price
        100.0
    """

    def __init__(self, items: Optional[Iterable[MenuItem]] = None):
        self._items: dict[str, MenuItem] = {
            item.id: item for item in (DEFAULT_MENU if items is None else items)
        }
        logger.info(f"MockMenuService initialized ({len(self._items)} items)")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def get_item(self, item_ref: str) -> MenuItem:
        item = self._items.get(item_ref)
        if item is None:
            raise MenuItemNotFoundError(
                f"Menu item {item_ref} does not exist",
                details={"menu_item_ref": item_ref},
            )
        return item

    def add_item(self, item: MenuItem) -> None:
        self._items[item.id] = item

    def set_availability(self, item_ref: str, is_available: bool) -> None:
        """Enable or disable an item in place."""
        item = self._items[item_ref]
        self._items[item_ref] = MenuItem(
            id=item.id,
            name=item.name,
            price=item.price,
            is_available=is_available,
            category=item.category,
        )

    async def health_check(self) -> bool:
        return True
