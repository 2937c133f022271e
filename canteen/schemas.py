"""
Pydantic Schemas for Request/Response Validation

The OrderResponse model doubles as the realtime snapshot: every broadcast
carries the same shape the HTTP API returns, so clients can always replace
their local copy with whatever they last received.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime

from canteen.models import OrderStatus, PaymentMethod, PaymentStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single requested line. Prices are never taken from the client."""
    menu_item_ref: str = Field(..., min_length=1, max_length=64, examples=["chicken_biryani"])
    quantity: int = Field(..., ge=1, le=99, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for placing a new order."""
    customer_name: Optional[str] = Field(None, max_length=100, examples=["Asha Rao"])
    items: List[OrderItemCreate] = Field(..., min_length=1)
    special_instructions: Optional[str] = Field(None, max_length=500)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH, examples=["cash", "card"])


class OrderStatusUpdate(BaseModel):
    """Request schema for a status change."""
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderItemResponse(BaseModel):
    menu_item_ref: str
    name: Optional[str] = None
    quantity: int
    unit_price: float
    subtotal: float


class OrderResponse(BaseModel):
    """Complete order snapshot."""
    id: str
    order_number: str
    customer_ref: str
    customer_name: str
    items: List[OrderItemResponse]
    subtotal: float
    service_fee: float
    total: float
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    special_instructions: Optional[str]
    estimated_ready_at: Optional[datetime]
    completed_at: Optional[datetime]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    success: bool = True
    orders: List[OrderResponse]
    pagination: PaginationResponse


class StatusTransitionResponse(BaseModel):
    """The authoritative lifecycle table, published for clients."""
    states: List[OrderStatus]
    initial: OrderStatus
    terminal: List[OrderStatus]
    transitions: dict[OrderStatus, List[OrderStatus]]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    details: Optional[dict] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    realtime: str
    redis: Optional[str] = None
    connections: int
    timestamp: datetime


def order_snapshot(order) -> dict:
    """JSON-ready snapshot of an order for realtime payloads."""
    return OrderResponse.model_validate(order).model_dump(mode="json")
