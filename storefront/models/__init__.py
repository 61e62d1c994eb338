"""Database model type definitions."""

from storefront.models.order import (
    Order,
    OrderCreate,
    OrderFilters,
    OrderLineItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
)
from storefront.models.profile import CartData

__all__ = [
    "CartData",
    "Order",
    "OrderCreate",
    "OrderFilters",
    "OrderLineItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "ShippingAddress",
]
