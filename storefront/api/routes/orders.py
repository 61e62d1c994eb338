"""Order and payment API routes."""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from storefront.api.deps import AdminUser, CurrentUser, Notifier
from storefront.api.middleware.error_handler import AuthenticationError
from storefront.models.order import OrderFilters, OrderStatus, PaymentStatus
from storefront.schemas.order import (
    CapturePaymentRequest,
    CreatePaymentRequest,
    OrderListResponse,
    OrderResponse,
    PaymentCreateResponse,
    PlacedOrderResponse,
    PlaceOrderRequest,
    SortField,
    SortOrder,
    UpdateOrderStatusRequest,
)
from storefront.services.order_lifecycle_service import OrderLifecycleService
from storefront.services.payment_gateway import PaymentGateway, ReturnUrls

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_service(notifier: Notifier) -> OrderLifecycleService:
    """Build the lifecycle service around the app's notifier."""
    return OrderLifecycleService(notifier)


OrderService = Annotated[OrderLifecycleService, Depends(get_order_service)]


def _return_urls(success_url: object | None, cancel_url: object | None) -> ReturnUrls | None:
    if success_url and cancel_url:
        return ReturnUrls(success_url=str(success_url), cancel_url=str(cancel_url))
    return None


@router.post(
    "",
    response_model=PlacedOrderResponse,
    summary="Place an order",
    description="Creates an order from the given items (or the saved cart). Online payment also returns approval links.",
)
async def place_order(data: PlaceOrderRequest, user: CurrentUser, service: OrderService) -> PlacedOrderResponse:
    """Place a cash-on-delivery or online-payment order.

    Raises:
        ValidationError: 400 for an empty order or unavailable product.
        GatewayRejectedError | GatewayUnavailableError: the order is kept
            pending and the customer is told to retry or choose COD.
    """
    order, approval_links = await service.place_order(
        user,
        [item.model_dump() for item in data.items],
        data.address.model_dump(),
        data.payment_method,
        return_urls=_return_urls(data.success_url, data.cancel_url),
        notes=data.notes,
    )
    return PlacedOrderResponse(order=OrderResponse.model_validate(order), approval_links=approval_links)


@router.post(
    "/payment/create",
    response_model=PaymentCreateResponse,
    summary="Create an online payment",
    description="Places an online-payment order and returns the gateway order ID and approval links.",
)
async def create_payment(data: CreatePaymentRequest, user: CurrentUser, service: OrderService) -> PaymentCreateResponse:
    result = await service.create_payment(
        user,
        [item.model_dump() for item in data.items],
        data.address.model_dump(),
        return_urls=_return_urls(data.success_url, data.cancel_url),
    )
    return PaymentCreateResponse(**result)


@router.post(
    "/payment/capture",
    response_model=OrderResponse,
    summary="Capture an approved payment",
    description="Finalizes the payment after the customer approved it. Safe to repeat.",
)
async def capture_payment(data: CapturePaymentRequest, user: CurrentUser, service: OrderService) -> OrderResponse:
    """Capture the caller's approved payment.

    Raises:
        NotFoundError: 404 if the caller has no order with that gateway ID.
        GatewayRejectedError: 400 if the gateway did not complete the capture.
    """
    order = await service.capture_payment(user, data.external_order_id)
    return OrderResponse.model_validate(order)


@router.post(
    "/payment/webhook",
    status_code=status.HTTP_200_OK,
    summary="Handle payment gateway webhooks",
    description="Receives signed Stripe events and reconciles order payments.",
)
async def payment_webhook(request: Request, service: OrderService) -> dict[str, str]:
    """Handle Stripe webhook events.

    The signature is verified before the event is trusted. Unknown event
    types are acknowledged and ignored.

    Raises:
        HTTPException: 400 if the signature header is missing or invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        event = PaymentGateway().verify_webhook_signature(payload, sig_header)
    except AuthenticationError as e:
        logger.error("Rejected webhook: %s", e.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event_type = event.get("type", "")
    outcome = await service.handle_gateway_event(event)
    logger.info("Processed webhook %s: %s", event_type, outcome)

    return {"status": "received"}


@router.put(
    "/status",
    response_model=OrderResponse,
    summary="Update order status",
    description="Admin only. Moves an order one step along placed, packing, shipped, out for delivery, delivered, or cancels it.",
)
async def update_order_status(data: UpdateOrderStatusRequest, admin: AdminUser, service: OrderService) -> OrderResponse:
    logger.info("Admin %s sets order %s to %s", admin.user_id, data.order_id, data.status.value)
    order = await service.update_order_status(data.order_id, data.status)
    return OrderResponse.model_validate(order)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Admin only. Paginated, filterable order listing with dashboard stats.",
)
async def list_orders(
    admin: AdminUser,
    service: OrderService,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    order_status: OrderStatus | None = Query(default=None, alias="status"),
    payment_status: PaymentStatus | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    user_email: str | None = Query(default=None, max_length=255),
    sort_by: SortField = Query(default="created_at"),
    sort_order: SortOrder = Query(default="desc"),
) -> OrderListResponse:
    filters: OrderFilters = {}
    if order_status:
        filters["order_status"] = order_status.value
    if payment_status:
        filters["payment_status"] = payment_status.value
    if start_date:
        filters["start_date"] = start_date
    if end_date:
        filters["end_date"] = end_date
    if user_email:
        filters["user_email"] = user_email

    result = await service.list_orders(filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
    return OrderListResponse.model_validate(result)


@router.get(
    "/mine",
    response_model=list[OrderResponse],
    summary="List my orders",
)
async def list_my_orders(user: CurrentUser, service: OrderService) -> list[OrderResponse]:
    orders = await service.list_user_orders(user)
    return [OrderResponse.model_validate(order) for order in orders]


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    description="Owners see their own orders; admins see any order.",
)
async def get_order(order_id: str, user: CurrentUser, service: OrderService) -> OrderResponse:
    order = await service.get_order_for_user(user, order_id)
    return OrderResponse.model_validate(order)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete order",
    description="Admin only. Hides the order while keeping it for audit.",
)
async def delete_order(order_id: str, admin: AdminUser, service: OrderService) -> None:
    logger.info("Admin %s deletes order %s", admin.user_id, order_id)
    await service.delete_order(order_id)


@router.post(
    "/{order_id}/reconcile",
    response_model=OrderResponse,
    summary="Reconcile payment",
    description="Admin only. Re-reads the gateway and settles a pending online payment.",
)
async def reconcile_order(order_id: str, admin: AdminUser, service: OrderService) -> OrderResponse:
    order = await service.reconcile_payment(order_id)
    return OrderResponse.model_validate(order)
