"""Order and payment Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from storefront.models.order import OrderStatus, PaymentMethod, PaymentStatus
from storefront.schemas.common import PaginationInfo


class OrderItemRequest(BaseModel):
    """One requested line. Name and price are taken from the catalog."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str = Field(min_length=1, description="Product ID")
    quantity: int = Field(ge=1, le=100, description="Quantity ordered")
    color: str = Field(default="", max_length=50, description="Selected color variant")


class AddressSchema(BaseModel):
    """Shipping address snapshot."""

    model_config = ConfigDict(from_attributes=True)

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    zipcode: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=2, max_length=2, description="ISO 3166-1 alpha-2 country code")
    phone: str = Field(min_length=5, max_length=30)


class PlaceOrderRequest(BaseModel):
    """Schema for POST /orders."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderItemRequest] = Field(
        default_factory=list, description="Lines to order; empty checks out the saved cart"
    )
    address: AddressSchema
    payment_method: PaymentMethod = Field(description="cod or gateway")
    success_url: HttpUrl | None = Field(default=None, description="Gateway redirect after approval")
    cancel_url: HttpUrl | None = Field(default=None, description="Gateway redirect after cancel")
    notes: str | None = Field(default=None, max_length=500, description="Delivery notes")


class CreatePaymentRequest(BaseModel):
    """Schema for POST /orders/payment/create."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderItemRequest] = Field(default_factory=list)
    address: AddressSchema
    success_url: HttpUrl | None = None
    cancel_url: HttpUrl | None = None


class CapturePaymentRequest(BaseModel):
    """Schema for POST /orders/payment/capture."""

    model_config = ConfigDict(from_attributes=True)

    external_order_id: str = Field(min_length=1, description="Gateway order ID returned at creation")


class UpdateOrderStatusRequest(BaseModel):
    """Schema for PUT /orders/status."""

    model_config = ConfigDict(from_attributes=True)

    order_id: str = Field(min_length=1)
    status: OrderStatus


class OrderLineItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    name: str
    image: str | None = None
    unit_amount_cents: int
    quantity: int
    color: str = ""


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    user_id: str = Field(description="Owning user")
    user_email: str | None = None
    items: list[OrderLineItemSchema]
    address: AddressSchema
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    order_status: OrderStatus
    subtotal_cents: int
    shipping_cents: int
    total_cents: int
    currency: str = Field(default="usd", description="Currency code")
    external_order_id: str | None = Field(default=None, description="Gateway order ID")
    external_capture_id: str | None = Field(default=None, description="Gateway capture ID")
    notes: str | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class PlacedOrderResponse(BaseModel):
    """Schema for POST /orders."""

    model_config = ConfigDict(from_attributes=True)

    order: OrderResponse
    approval_links: list[dict[str, str]] = Field(
        default_factory=list, description="Where to send the customer to approve an online payment"
    )


class PaymentCreateResponse(BaseModel):
    """Schema for POST /orders/payment/create."""

    model_config = ConfigDict(from_attributes=True)

    external_order_id: str
    approval_links: list[dict[str, str]]
    order_id: str


class OrderStatsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_orders: int = 0
    total_revenue_cents: int = 0
    pending_orders: int = 0
    delivered_orders: int = 0
    pending_payments: int = 0
    completed_payments: int = 0


class OrderListResponse(BaseModel):
    """Schema for the admin order listing."""

    model_config = ConfigDict(from_attributes=True)

    orders: list[OrderResponse]
    pagination: PaginationInfo
    stats: OrderStatsSchema


SortField = Literal["created_at", "updated_at", "total_cents", "order_status", "payment_status"]
SortOrder = Literal["asc", "desc"]


class ConnectionInfo(BaseModel):
    connection_id: str
    user_id: str | None = None
    email: str | None = None
    role: str
    connected_at: datetime
    order_rooms: list[str] = Field(default_factory=list)


class ConnectionStatsResponse(BaseModel):
    """Live WebSocket connection counts."""

    connected_users: int
    connected_admins: int
    open_order_rooms: int
    connections: list[ConnectionInfo]
