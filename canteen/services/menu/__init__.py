"""
Menu Service Factory

Returns the mock catalogue in development and the remote HTTP client
otherwise.

Usage:
    from canteen.services.menu import build_menu_service

    menu = build_menu_service(settings)
    item = await menu.get_item("chicken_biryani")
"""

import logging

from canteen.core.config import Settings
from canteen.services.menu.base import BaseMenuService, MenuItem
from canteen.services.menu.mock import MockMenuService, DEFAULT_MENU
from canteen.services.menu.remote import RemoteMenuService

logger = logging.getLogger(__name__)


def build_menu_service(settings: Settings) -> BaseMenuService:
    """Get the configured menu service."""
    if settings.is_development:
        logger.info("Menu Service: Using MockMenuService (development mode)")
        return MockMenuService()

    logger.info(f"Menu Service: Using RemoteMenuService ({settings.env_mode.value} mode)")
    return RemoteMenuService(
        base_url=settings.menu_service_url,
        timeout=settings.menu_service_timeout,
    )


__all__ = [
    "build_menu_service",
    "BaseMenuService",
    "MenuItem",
    "MockMenuService",
    "RemoteMenuService",
    "DEFAULT_MENU",
]
