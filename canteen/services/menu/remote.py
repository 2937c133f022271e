"""
Remote Menu Service Implementation

Production implementation that asks the menu service over HTTP.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - MENU_SERVICE_URL must be set in environment
    - The menu service answers GET /api/menu/{id} with
      {"_id"|"id", "name", "price", "isAvailable"|"is_available"}
      optionally wrapped in {"data": ...}
"""

import logging
from typing import Any, Optional

import httpx

from canteen.core.exceptions import MenuItemNotFoundError, ServiceUnavailableError
from canteen.services.menu.base import BaseMenuService, MenuItem

logger = logging.getLogger(__name__)


class RemoteMenuService(BaseMenuService):
    """
    HTTP menu client.

    A single httpx.AsyncClient is reused for the life of the process and
    closed from the application lifespan.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url:
            raise ValueError(
                "MENU_SERVICE_URL is required for production mode. "
                "Set it in your .env file or environment variables."
            )
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        logger.info(f"RemoteMenuService initialized ({base_url})")

    @property
    def provider_name(self) -> str:
        return "remote"

    @staticmethod
    def _parse_item(item_ref: str, body: Any) -> MenuItem:
        try:
            data = body.get("data", body)
            return MenuItem(
                id=str(data.get("id") or data.get("_id") or item_ref),
                name=data["name"],
                price=float(data["price"]),
                is_available=bool(data.get("is_available", data.get("isAvailable", True))),
                category=data.get("category") if isinstance(data.get("category"), str) else None,
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ServiceUnavailableError(
                f"Menu service returned a malformed item for {item_ref}",
                cause=e,
            ) from e

    async def get_item(self, item_ref: str) -> MenuItem:
        try:
            response = await self._client.get(f"/api/menu/{item_ref}")
        except httpx.HTTPError as e:
            logger.error(f"Menu lookup for {item_ref} failed: {e}")
            raise ServiceUnavailableError("Menu service unreachable", cause=e) from e

        if response.status_code == 404:
            raise MenuItemNotFoundError(
                f"Menu item {item_ref} does not exist",
                details={"menu_item_ref": item_ref},
            )
        if response.status_code >= 400:
            logger.error(f"Menu lookup for {item_ref} returned HTTP {response.status_code}")
            raise ServiceUnavailableError(
                f"Menu service answered HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Menu lookup for {item_ref} returned a non-JSON body")
            raise ServiceUnavailableError(
                f"Menu service returned a malformed reply for {item_ref}",
                cause=e,
            ) from e

        return self._parse_item(item_ref, body)

    async def health_check(self) -> bool:
        try:
            response = await self._client.get("/api/health")
            return response.status_code < 500
        except httpx.HTTPError as e:
            logger.warning(f"Menu health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
