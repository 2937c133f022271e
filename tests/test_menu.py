"""Tests for the menu collaborators."""
from __future__ import annotations

import unittest

import httpx

from canteen.core.exceptions import MenuItemNotFoundError, ServiceUnavailableError
from canteen.services.menu import MenuItem, MockMenuService, RemoteMenuService, build_menu_service

from tests.support import make_settings


def remote_with(handler) -> RemoteMenuService:
    client = httpx.AsyncClient(base_url="http://menu.test", transport=httpx.MockTransport(handler))
    return RemoteMenuService(base_url="http://menu.test", client=client)


class TestMockMenuService(unittest.IsolatedAsyncioTestCase):
    async def test_default_catalogue(self):
        menu = MockMenuService()
        item = await menu.get_item("chicken_biryani")
        self.assertEqual(item.price, 180.0)
        self.assertTrue(item.is_available)

    async def test_unknown_item(self):
        with self.assertRaises(MenuItemNotFoundError):
            await MockMenuService().get_item("unicorn_steak")

    async def test_toggle_availability(self):
        menu = MockMenuService()
        menu.set_availability("paneer_roll", False)
        self.assertFalse((await menu.get_item("paneer_roll")).is_available)

    async def test_add_item(self):
        menu = MockMenuService([])
        menu.add_item(MenuItem("idli", "Idli", 30.0))
        self.assertEqual((await menu.get_item("idli")).name, "Idli")


class TestRemoteMenuService(unittest.IsolatedAsyncioTestCase):
    async def test_parses_wrapped_item(self):
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(request.url.path, "/api/menu/dosa")
            return httpx.Response(
                200,
                json={"success": True, "data": {"_id": "dosa", "name": "Masala Dosa", "price": 60, "isAvailable": False}},
            )

        menu = remote_with(handler)
        item = await menu.get_item("dosa")
        await menu.close()

        self.assertEqual((item.id, item.name, item.price, item.is_available), ("dosa", "Masala Dosa", 60.0, False))

    async def test_404_is_not_found(self):
        menu = remote_with(lambda request: httpx.Response(404, json={"message": "nope"}))
        with self.assertRaises(MenuItemNotFoundError):
            await menu.get_item("ghost")
        await menu.close()

    async def test_server_error_is_unavailable(self):
        menu = remote_with(lambda request: httpx.Response(502))
        with self.assertRaises(ServiceUnavailableError):
            await menu.get_item("dosa")
        await menu.close()

    async def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        menu = remote_with(handler)
        with self.assertRaises(ServiceUnavailableError):
            await menu.get_item("dosa")
        self.assertFalse(await menu.health_check())
        await menu.close()

    async def test_malformed_body_is_unavailable(self):
        menu = remote_with(lambda request: httpx.Response(200, json={"name": "No price"}))
        with self.assertRaises(ServiceUnavailableError):
            await menu.get_item("dosa")
        await menu.close()

    async def test_non_json_body_is_unavailable(self):
        menu = remote_with(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with self.assertRaises(ServiceUnavailableError):
            await menu.get_item("dosa")
        await menu.close()

    async def test_non_object_body_is_unavailable(self):
        for body in ([1, 2], "dosa", {"data": [1, 2]}):
            menu = remote_with(lambda request, body=body: httpx.Response(200, json=body))
            with self.assertRaises(ServiceUnavailableError):
                await menu.get_item("dosa")
            await menu.close()


class TestFactory(unittest.TestCase):
    def test_development_uses_mock(self):
        self.assertEqual(build_menu_service(make_settings("/tmp")).provider_name, "mock")

    def test_production_requires_url(self):
        with self.assertRaises(ValueError):
            build_menu_service(make_settings("/tmp", env_mode="production"))


if __name__ == "__main__":
    unittest.main()
