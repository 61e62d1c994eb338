"""Order model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class PaymentMethod(str, Enum):
    """How the customer pays for an order."""

    COD = "cod"
    GATEWAY = "gateway"


class PaymentStatus(str, Enum):
    """Payment status values matching the database enum."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderStatus(str, Enum):
    """Fulfilment status values matching the database enum."""

    PLACED = "placed"
    PACKING = "packing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Statuses that produce a shipping_update notification instead of order_updated
SHIPPING_STATUSES = frozenset(
    {OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}
)


class OrderLineItem(TypedDict):
    """Structure for a single line item in an order.

    Stored as part of the items JSONB array. Name and price are copied from
    the catalog when the order is placed so later catalog edits never change
    a historical order.
    """

    product_id: str
    name: str
    image: str | None
    unit_amount_cents: int
    quantity: int
    color: str


class ShippingAddress(TypedDict):
    """Shipping address snapshot stored on the order."""

    first_name: str
    last_name: str
    email: str
    street: str
    city: str
    state: str
    zipcode: str
    country: str
    phone: str


class Order(TypedDict):
    """Order table row representation.

    Maps directly to the database schema.
    """

    id: str
    user_id: str
    user_email: str | None
    items: list[OrderLineItem]
    address: ShippingAddress
    payment_method: str
    payment_status: str
    order_status: str
    subtotal_cents: int
    shipping_cents: int
    total_cents: int
    currency: str
    external_order_id: str | None
    external_capture_id: str | None
    delivered_at: datetime | None
    notes: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new order."""

    user_id: str
    user_email: str | None
    items: list[OrderLineItem]
    address: ShippingAddress
    payment_method: str
    subtotal_cents: int
    shipping_cents: int
    total_cents: int
    currency: str
    notes: str | None


class OrderFilters(TypedDict, total=False):
    """Filters accepted by the order listing query."""

    user_id: str
    order_status: str
    payment_status: str
    start_date: datetime
    end_date: datetime
    is_active: bool
    user_email: str
