"""FastAPI dependency providers.

Collaborators are built once by the application lifespan and kept on
app.state; these providers only hand them to the routes.
"""

from fastapi import Depends, Request

from canteen.core.config import Settings
from canteen.core.exceptions import ForbiddenError
from canteen.services.auth.base import BaseAuthService, Principal, Role
from canteen.services.order_service import OrderService
from canteen.services.order_store import OrderStore
from canteen.services.realtime.hub import RealtimeHub
from canteen.services.status_machine import StatusMachine
from canteen.services.tracking import TrackingResolver


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_order_store(request: Request) -> OrderStore:
    return request.app.state.order_store


def get_tracking_resolver(request: Request) -> TrackingResolver:
    return request.app.state.tracking


def get_status_machine(request: Request) -> StatusMachine:
    return request.app.state.status_machine


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


def get_principal(request: Request) -> Principal:
    """Resolve the caller; UnauthorizedError when the request carries no identity."""
    auth: BaseAuthService = request.app.state.auth_service
    return auth.authenticate(request.headers)


def require_staff(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_elevated:
        raise ForbiddenError("Staff access required")
    return principal


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != Role.ADMIN:
        raise ForbiddenError("Admin access required")
    return principal
