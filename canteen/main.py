"""
FastAPI Application Entry Point

Canteen Orders - order placement, lifecycle and live tracking.
Supports both Mock collaborators (development) and real ones (production).

Endpoints:
    - POST   /api/orders: Place an order
    - GET    /api/orders: List orders (staff)
    - GET    /api/orders/mine: The caller's own orders
    - GET    /api/orders/track[/{token}]: Public order tracking
    - PATCH  /api/orders/{ref}/status: Move an order along its lifecycle
    - PATCH  /api/orders/{ref}/cancel: Cancel an order
    - DELETE /api/orders/{ref}: Soft-delete an order (admin)
    - GET    /api/order-statuses: The lifecycle table
    - GET    /health: System health check
    - WS     /ws: Realtime order events
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from canteen.core.config import RealtimeBackend, Settings, get_settings, setup_logging
from canteen.core.exceptions import CanteenError, ValidationError
from canteen.database import build_engine, build_session_factory, init_db
from canteen.dependencies import (
    get_app_settings,
    get_hub,
    get_order_service,
    get_order_store,
    get_principal,
    get_status_machine,
    get_tracking_resolver,
    require_admin,
    require_staff,
)
from canteen.models import OrderStatus
from canteen.schemas import (
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaginationResponse,
    StatusTransitionResponse,
)
from canteen.services.auth import BaseAuthService, Principal, build_auth_service
from canteen.services.menu import BaseMenuService, build_menu_service
from canteen.services.order_numbers import SequenceOrderNumberGenerator
from canteen.services.order_service import OrderLine, OrderService
from canteen.services.order_store import OrderPage, OrderStore
from canteen.services.realtime import RealtimeHub, build_realtime_hub
from canteen.services.status_machine import INITIAL_STATUS, FORWARD_FLOW, TERMINAL_STATES, StatusMachine
from canteen.services.tracking import TrackingResolver

# Initialize logging
setup_logging()
logger = logging.getLogger(__name__)

BEST_EFFORT_HEADER = "X-Tracking-Best-Effort"


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    await init_db(engine)
    logger.info("✅ Database initialized")

    store = OrderStore(session_factory)
    numbers = SequenceOrderNumberGenerator(
        session_factory,
        sequence_name=settings.order_sequence_name,
        prefix=settings.order_number_prefix,
        digits=settings.order_number_digits,
    )

    hub = build_realtime_hub(settings)
    await hub.start()
    logger.info(f"✅ Realtime Hub: {hub.backend_name}")

    menu_service: BaseMenuService = app.state.menu_service or build_menu_service(settings)
    auth_service: BaseAuthService = app.state.auth_service or build_auth_service(settings)
    logger.info(f"✅ Menu Service: {menu_service.provider_name}")
    logger.info(f"✅ Auth Service: {auth_service.provider_name}")

    machine = StatusMachine()

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.order_store = store
    app.state.hub = hub
    app.state.menu_service = menu_service
    app.state.auth_service = auth_service
    app.state.status_machine = machine
    app.state.order_service = OrderService(store, menu_service, numbers, hub, machine, settings)
    app.state.tracking = TrackingResolver(store)

    # Validate production config
    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await hub.close()
    await menu_service.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def parse_status_filter(value: Optional[str]) -> Optional[OrderStatus]:
    if not value:
        return None
    try:
        return OrderStatus(value.strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid status: {value}",
            details={"allowed": [s.value for s in OrderStatus]},
        )


def page_params(settings: Settings, page: int, limit: Optional[int]) -> tuple[int, int]:
    limit = min(limit or settings.default_page_size, settings.max_page_size)
    return page, limit


def to_list_response(result: OrderPage) -> OrderListResponse:
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in result.items],
        pagination=PaginationResponse(
            page=result.page,
            limit=result.limit,
            total=result.total,
            pages=result.pages,
        ),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

router = APIRouter(prefix="/api")

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post(
    "/orders",
    status_code=201,
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Place a new order.

    Prices come from the menu; the client only names items and quantities.
    """
    logger.info(f"Placing order for: {principal.principal_id}")

    order = await service.place_order(
        customer_ref=principal.principal_id,
        customer_name=order_data.customer_name,
        lines=[OrderLine(item.menu_item_ref, item.quantity) for item in order_data.items],
        special_instructions=order_data.special_instructions,
        payment_method=order_data.payment_method,
    )
    return OrderResponse.model_validate(order)


@router.get(
    "/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    _: Principal = Depends(require_staff),
    store: OrderStore = Depends(get_order_store),
    settings: Settings = Depends(get_app_settings),
) -> OrderListResponse:
    """Retrieve a paginated list of active orders, newest first."""
    page, limit = page_params(settings, page, limit)
    result = await store.list(status=parse_status_filter(status), page=page, limit=limit)
    return to_list_response(result)


@router.get(
    "/orders/mine",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="My Orders",
)
async def my_orders(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    principal: Principal = Depends(get_principal),
    store: OrderStore = Depends(get_order_store),
    settings: Settings = Depends(get_app_settings),
) -> OrderListResponse:
    page, limit = page_params(settings, page, limit)
    result = await store.list(customer_ref=principal.principal_id, page=page, limit=limit)
    return to_list_response(result)


@router.get(
    "/orders/track",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Tracking"],
    summary="Track Latest Order",
)
@router.get(
    "/orders/track/{token}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Tracking"],
    summary="Track Order",
)
async def track_order(
    response: Response,
    token: Optional[str] = None,
    tracking: TrackingResolver = Depends(get_tracking_resolver),
) -> OrderResponse:
    """
    Look up an order by id or order number ("MRC000042", "#MRC000042").

    Without a token the most recent order is returned and the response
    carries X-Tracking-Best-Effort: true.
    """
    result = await tracking.resolve(token)
    if result.best_effort:
        response.headers[BEST_EFFORT_HEADER] = "true"
    return OrderResponse.model_validate(result.order)


@router.patch(
    "/orders/{order_ref}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_ref: str,
    body: OrderStatusUpdate,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await service.update_status(order_ref, body.status, principal)
    return OrderResponse.model_validate(order)


@router.patch(
    "/orders/{order_ref}/cancel",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Cancel Order",
)
async def cancel_order(
    order_ref: str,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await service.cancel(order_ref, principal)
    return OrderResponse.model_validate(order)


@router.delete(
    "/orders/{order_ref}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Delete Order",
)
async def delete_order(
    order_ref: str,
    principal: Principal = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Soft delete: the order disappears from listings and tracking, the row stays."""
    order = await service.deactivate(order_ref, principal)
    return OrderResponse.model_validate(order)


@router.get(
    "/order-statuses",
    response_model=StatusTransitionResponse,
    tags=["Orders"],
    summary="Order Lifecycle",
)
async def order_statuses(
    machine: StatusMachine = Depends(get_status_machine),
) -> StatusTransitionResponse:
    states = list(FORWARD_FLOW) + [s for s in OrderStatus if s not in FORWARD_FLOW]
    return StatusTransitionResponse(
        states=states,
        initial=INITIAL_STATUS,
        terminal=[s for s in states if s in TERMINAL_STATES],
        transitions={s: sorted(machine.allowed_next(s), key=states.index) for s in states},
    )


# =============================================================================
# REALTIME
# =============================================================================

async def realtime_socket(websocket: WebSocket) -> None:
    """
    Realtime order events.

    Client frames:
        {"action": "join-room", "room": "staff"}
        {"action": "leave-room", "room": "staff"}
        {"action": "ping"}

    Every outgoing frame, acknowledgements included, goes through the
    connection's single writer so frames never interleave.
    """
    hub: RealtimeHub = websocket.app.state.hub
    await websocket.accept()
    connection = await hub.connect(websocket)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except (KeyError, ValueError):
                # binary frames surface as KeyError("text")
                connection.offer({"event": "error", "detail": "Frames must be JSON objects"})
                continue
            if not isinstance(frame, dict):
                connection.offer({"event": "error", "detail": "Frames must be JSON objects"})
                continue

            action = frame.get("action")
            room = frame.get("room")
            if action in ("join-room", "leave-room") and not isinstance(room, str):
                connection.offer({"event": "error", "detail": "Rooms are named by strings"})
                continue
            if action == "join-room":
                try:
                    hub.subscribe(connection, room)
                except CanteenError as e:
                    connection.offer({"event": "error", **e.to_dict()})
                    continue
                connection.offer({"event": "room-joined", "room": room})
            elif action == "leave-room":
                hub.unsubscribe(connection, room)
                connection.offer({"event": "room-left", "room": room})
            elif action == "ping":
                connection.offer({"event": "pong"})
            else:
                connection.offer({"event": "error", "detail": f"Unknown action: {action}"})
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(connection)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

async def root(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


async def health_check(
    store: OrderStore = Depends(get_order_store),
    hub: RealtimeHub = Depends(get_hub),
    settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await store.ping()
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check realtime hub (and Redis behind it)
    hub_healthy = await hub.health_check()
    realtime_status = "healthy" if hub_healthy else "unhealthy"
    redis_status = None
    if settings.effective_realtime_backend == RealtimeBackend.REDIS:
        redis_status = realtime_status

    overall = "operational" if db_status == "healthy" and hub_healthy else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        realtime=realtime_status,
        redis=redis_status,
        connections=hub.connection_count,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

async def canteen_exception_handler(request: Request, exc: CanteenError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": ValidationError.default_code,
            "detail": "Invalid request",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


def make_global_exception_handler(settings: Settings):
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all exception handler."""
        logger.exception(f"Unhandled exception: {exc}")

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal Server Error",
                "detail": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )
    return global_exception_handler


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    menu_service: Optional[BaseMenuService] = None,
    auth_service: Optional[BaseAuthService] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators passed here replace the ones the settings would select.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Canteen order placement with a strict status lifecycle and live "
            "order tracking over WebSockets."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.menu_service = menu_service
    app.state.auth_service = auth_service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_api_route("/", root, methods=["GET"], tags=["Root"])
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["Health"],
        summary="System Health Check",
    )
    app.include_router(router)
    app.add_api_websocket_route("/ws", realtime_socket)

    app.add_exception_handler(CanteenError, canteen_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, make_global_exception_handler(settings))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("canteen.main:app", host=settings.api_host, port=settings.api_port, reload=settings.is_development)
