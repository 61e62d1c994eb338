"""Order lifecycle: placement, payment capture, reconciliation and fulfilment."""

import logging
from typing import Any, Awaitable

from storefront.api.middleware.error_handler import (
    GatewayRejectedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from storefront.core.config import get_settings
from storefront.models.order import (
    SHIPPING_STATUSES,
    Order,
    OrderFilters,
    OrderLineItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from storefront.schemas.auth import UserContext
from storefront.schemas.common import PaginationInfo
from storefront.services.analytics_service import AnalyticsService
from storefront.services.cart_service import CartService
from storefront.services.email_service import EmailService
from storefront.services.notification_service import NotificationEvent, NotificationService
from storefront.services.order_store import OrderStore
from storefront.services.payment_gateway import (
    AmountBreakdown,
    AuthorizationState,
    CaptureStatus,
    LineAmount,
    PaymentGateway,
    ReturnUrls,
)
from storefront.services.product_service import ProductService, price_to_cents

logger = logging.getLogger(__name__)

CAPTURE_FAILED_MESSAGE = (
    "Your payment could not be completed. Please try again or choose Cash on Delivery."
)


class OrderLifecycleService:
    """Coordinates orders, the payment gateway and their side effects.

    Orders are persisted before the gateway is contacted, so a crash between
    the two leaves a pending order that reconciliation can pick up. Moving a
    payment to completed is an atomic conditional update; whichever caller
    (capture request, webhook or reconciliation) wins it runs the side
    effects, and every other caller returns the stored order untouched.
    """

    def __init__(
        self,
        notifier: NotificationService,
        store: OrderStore | None = None,
        gateway: PaymentGateway | None = None,
        products: ProductService | None = None,
        cart: CartService | None = None,
        analytics: AnalyticsService | None = None,
        email: EmailService | None = None,
    ) -> None:
        self.notifier = notifier
        self.store = store or OrderStore()
        self.gateway = gateway or PaymentGateway()
        self.products = products or ProductService()
        self.cart = cart or CartService()
        self.analytics = analytics or AnalyticsService()
        self.email = email or EmailService()
        self.settings = get_settings()

    # Placement

    async def place_order(
        self,
        user: UserContext,
        items: list[dict[str, Any]] | None,
        address: dict[str, Any],
        payment_method: PaymentMethod | str,
        return_urls: ReturnUrls | None = None,
        notes: str | None = None,
    ) -> tuple[Order, list[dict[str, str]]]:
        """Create an order and, for online payment, its gateway authorization.

        Args:
            user: The buyer.
            items: Requested lines (product_id, quantity, color). When empty
                the user's saved cart is checked out instead.
            address: Shipping address snapshot.
            payment_method: "cod" or "gateway".
            return_urls: Gateway redirect targets; defaults point at the storefront.
            notes: Optional delivery notes.

        Returns:
            tuple: (order, approval_links). approval_links is empty for COD.

        Raises:
            ValidationError: Empty order, unknown or inactive product, bad quantity,
                or an online total below the gateway minimum.
            PersistenceError: The order could not be saved.
            GatewayRejectedError | GatewayUnavailableError: The authorization
                could not be created; the order stays pending/placed.
        """
        method = PaymentMethod(payment_method)
        requested = items or await self._items_from_cart(user)
        line_items = await self._price_items(requested)

        subtotal = sum(item["unit_amount_cents"] * item["quantity"] for item in line_items)
        shipping = self.settings.shipping_fee_cents
        total = subtotal + shipping

        if method is PaymentMethod.GATEWAY and total < self.settings.gateway_min_amount_cents:
            raise ValidationError(
                f"Order total must be at least {self.settings.gateway_min_amount_cents} cents to pay online"
            )

        order = await self.store.create(
            {
                "user_id": str(user.user_id),
                "user_email": user.email or address.get("email"),
                "items": line_items,
                "address": address,
                "payment_method": method.value,
                "subtotal_cents": subtotal,
                "shipping_cents": shipping,
                "total_cents": total,
                "currency": self.settings.base_currency,
                "notes": notes,
            }
        )
        await self._best_effort("new_order notification", order, self.notifier.publish_order_event(NotificationEvent.NEW_ORDER, order))

        if method is PaymentMethod.COD:
            await self._best_effort("cart clear", order, self.cart.clear_cart(order["user_id"]))
            await self._best_effort("purchase tracking", order, self.analytics.track_purchase(order["user_id"], order))
            await self._best_effort("confirmation email", order, self.email.send_order_confirmation(order))
            return order, []

        amount = AmountBreakdown(
            lines=[
                LineAmount(name=i["name"], unit_amount_cents=i["unit_amount_cents"], quantity=i["quantity"])
                for i in line_items
            ],
            shipping_cents=shipping,
        )
        try:
            authorization = await self.gateway.create_authorization(
                amount,
                address,
                return_urls or self._default_return_urls(order["id"]),
                reference=order["id"],
            )
        except Exception:
            logger.warning("Order %s left pending: gateway authorization failed", order["id"])
            raise

        order = await self.store.set_external_order_id(order["id"], authorization.external_order_id)
        return order, authorization.approval_links

    async def create_payment(
        self,
        user: UserContext,
        items: list[dict[str, Any]] | None,
        address: dict[str, Any],
        return_urls: ReturnUrls | None = None,
    ) -> dict[str, Any]:
        """Place an online-payment order and return what the client needs to pay.

        Returns:
            dict: external_order_id, approval_links and order_id.
        """
        order, approval_links = await self.place_order(
            user, items, address, PaymentMethod.GATEWAY, return_urls=return_urls
        )
        return {
            "external_order_id": order["external_order_id"],
            "approval_links": approval_links,
            "order_id": order["id"],
        }

    async def _items_from_cart(self, user: UserContext) -> list[dict[str, Any]]:
        cart = await self.cart.get_cart(str(user.user_id))
        return [
            {"product_id": product_id, "color": color, "quantity": quantity}
            for product_id, colors in cart.items()
            for color, quantity in colors.items()
            if quantity > 0
        ]

    async def _price_items(self, requested: list[dict[str, Any]]) -> list[OrderLineItem]:
        """Snapshot name and price from the catalog for each requested line."""
        if not requested:
            raise ValidationError("Order must contain at least one item")

        catalog = await self.products.get_products([str(item["product_id"]) for item in requested])

        line_items: list[OrderLineItem] = []
        for item in requested:
            product_id = str(item["product_id"])
            quantity = int(item["quantity"])
            if quantity < 1:
                raise ValidationError(f"Quantity for product {product_id} must be at least 1")

            product = catalog.get(product_id)
            if not product or not product.get("active", True):
                raise ValidationError(f"Product {product_id} is not available")

            line_items.append(
                {
                    "product_id": product_id,
                    "name": product["name"],
                    "image": product.get("image"),
                    "unit_amount_cents": price_to_cents(product["price"]),
                    "quantity": quantity,
                    "color": item.get("color") or "",
                }
            )
        return line_items

    def _default_return_urls(self, order_id: str) -> ReturnUrls:
        base = self.settings.frontend_url.rstrip("/")
        return ReturnUrls(
            success_url=f"{base}/checkout/success?order_id={order_id}&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/checkout/cancel?order_id={order_id}",
        )

    # Payment

    async def capture_payment(self, user: UserContext, external_order_id: str) -> Order:
        """Capture an approved authorization for the caller's order.

        Calling this again for an order that is already paid returns the
        order unchanged, without touching the gateway or re-running side effects.

        Raises:
            NotFoundError: No order of this user has that gateway order ID.
            InvalidTransitionError: The payment already failed or was refunded.
            GatewayRejectedError: The gateway did not complete the capture;
                the order stays pending.
            GatewayUnavailableError: The gateway could not be reached.
        """
        order = await self.store.find_by_external_payment_id(external_order_id, user_id=str(user.user_id))
        if not order:
            raise NotFoundError("Order not found")

        if order["payment_status"] == PaymentStatus.COMPLETED.value:
            logger.info("Order %s already paid; capture is a no-op", order["id"])
            return order
        if order["payment_status"] != PaymentStatus.PENDING.value:
            raise InvalidTransitionError(f"Payment is {order['payment_status']} and cannot be captured")

        result = await self.gateway.capture_authorization(external_order_id)
        if result.status is not CaptureStatus.COMPLETED:
            logger.warning("Capture for order %s did not complete", order["id"])
            raise GatewayRejectedError(CAPTURE_FAILED_MESSAGE)

        return await self._complete_payment(order, result.capture_id)

    async def handle_gateway_event(self, event: dict[str, Any]) -> str:
        """Apply a verified gateway webhook event.

        Completion events are re-checked against the gateway rather than
        trusted from the payload. Unknown events are ignored.

        Returns:
            str: What was done, for logging.
        """
        event_type = event.get("type", "")
        obj = event.get("data", {}).get("object", {})

        if event_type == "checkout.session.completed":
            order = await self.store.find_by_external_payment_id(obj.get("id", ""))
            return await self._reconcile_from_event(event_type, order)

        if event_type == "payment_intent.succeeded":
            order = await self._order_from_metadata(obj)
            return await self._reconcile_from_event(event_type, order)

        if event_type == "checkout.session.expired":
            order = await self.store.find_by_external_payment_id(obj.get("id", ""))
            return await self._fail_from_event(event_type, order)

        if event_type in ("payment_intent.payment_failed", "payment_intent.canceled"):
            order = await self._order_from_metadata(obj)
            return await self._fail_from_event(event_type, order)

        if event_type == "charge.refunded":
            order = await self.store.find_by_external_capture_id(obj.get("id", ""))
            if not order:
                logger.info("%s for unknown capture %s", event_type, obj.get("id"))
                return "ignored"
            refunded = await self.store.update_payment_status(
                order["id"], PaymentStatus.REFUNDED, expected_status=PaymentStatus.COMPLETED
            )
            if refunded is None:
                return "unchanged"
            await self._best_effort("payment_update notification", refunded, self.notifier.publish_order_event(NotificationEvent.PAYMENT_UPDATE, refunded))
            return "refunded"

        logger.debug("Unhandled gateway event type: %s", event_type)
        return "ignored"

    async def _order_from_metadata(self, obj: dict[str, Any]) -> Order | None:
        order_id = (obj.get("metadata") or {}).get("order_id")
        return await self.store.find_by_id(order_id) if order_id else None

    async def _reconcile_from_event(self, event_type: str, order: Order | None) -> str:
        if not order or not order.get("external_order_id"):
            logger.info("%s does not match a known order", event_type)
            return "ignored"
        if order["payment_status"] != PaymentStatus.PENDING.value:
            return "unchanged"

        info = await self.gateway.query_authorization(order["external_order_id"])
        if info.state is not AuthorizationState.COMPLETED:
            logger.info("Order %s authorization is %s; waiting for capture", order["id"], info.state.value)
            return "unchanged"

        updated = await self._complete_payment(order, info.capture_id)
        return "completed" if updated["payment_status"] == PaymentStatus.COMPLETED.value else "unchanged"

    async def _fail_from_event(self, event_type: str, order: Order | None) -> str:
        if not order:
            logger.info("%s does not match a known order", event_type)
            return "ignored"
        failed = await self._fail_payment(order)
        return "failed" if failed["payment_status"] == PaymentStatus.FAILED.value else "unchanged"

    async def reconcile_payment(self, order_id: str) -> Order:
        """Bring a pending online payment in line with the gateway.

        Approved authorizations are captured, completed ones recorded, and
        voided ones (or orders that never got an authorization) marked failed.

        Raises:
            NotFoundError: Unknown order.
            ValidationError: The order is not paid online.
        """
        order = await self.store.find_by_id(order_id)
        if not order:
            raise NotFoundError("Order not found")
        if order["payment_method"] != PaymentMethod.GATEWAY.value:
            raise ValidationError("Only online payments can be reconciled")
        if order["payment_status"] != PaymentStatus.PENDING.value:
            return order

        external_order_id = order.get("external_order_id")
        if not external_order_id:
            logger.warning("Order %s never received a gateway authorization", order_id)
            return await self._fail_payment(order)

        info = await self.gateway.query_authorization(external_order_id)
        logger.info("Reconciling order %s: authorization is %s", order_id, info.state.value)

        if info.state is AuthorizationState.APPROVED:
            result = await self.gateway.capture_authorization(external_order_id)
            if result.status is CaptureStatus.COMPLETED:
                return await self._complete_payment(order, result.capture_id)
            return order
        if info.state is AuthorizationState.COMPLETED:
            return await self._complete_payment(order, info.capture_id)
        if info.state is AuthorizationState.VOIDED:
            return await self._fail_payment(order)
        return order

    async def _complete_payment(self, order: Order, capture_id: str | None) -> Order:
        """Mark pending -> completed; only the caller that wins runs side effects."""
        updated = await self.store.update_payment_status(
            order["id"],
            PaymentStatus.COMPLETED,
            expected_status=PaymentStatus.PENDING,
            fields={"external_capture_id": capture_id},
        )
        if updated is None:
            current = await self.store.find_by_id(order["id"]) or order
            if current["payment_status"] != PaymentStatus.COMPLETED.value:
                logger.error(
                    "Order %s was captured at the gateway but is %s locally",
                    order["id"],
                    current["payment_status"],
                )
            return current

        await self._best_effort("cart clear", updated, self.cart.clear_cart(updated["user_id"]))
        await self._best_effort("payment_update notification", updated, self.notifier.publish_order_event(NotificationEvent.PAYMENT_UPDATE, updated))
        await self._best_effort("purchase tracking", updated, self.analytics.track_purchase(updated["user_id"], updated))
        await self._best_effort("confirmation email", updated, self.email.send_order_confirmation(updated))
        return updated

    async def _fail_payment(self, order: Order) -> Order:
        updated = await self.store.update_payment_status(
            order["id"], PaymentStatus.FAILED, expected_status=PaymentStatus.PENDING
        )
        if updated is None:
            return await self.store.find_by_id(order["id"]) or order

        await self._best_effort("payment_update notification", updated, self.notifier.publish_order_event(NotificationEvent.PAYMENT_UPDATE, updated))
        return updated

    # Fulfilment and queries

    async def update_order_status(self, order_id: str, status: OrderStatus | str) -> Order:
        """Admin status change along the fulfilment sequence.

        Delivering a cash-on-delivery order also records its payment.

        Raises:
            NotFoundError: Unknown order.
            InvalidTransitionError: The change is not allowed, with the reason.
        """
        updated = await self.store.update_status(order_id, status)

        if (
            updated["order_status"] == OrderStatus.DELIVERED.value
            and updated["payment_method"] == PaymentMethod.COD.value
            and updated["payment_status"] == PaymentStatus.PENDING.value
        ):
            paid = await self.store.update_payment_status(
                order_id, PaymentStatus.COMPLETED, expected_status=PaymentStatus.PENDING
            )
            updated = paid or updated

        event = (
            NotificationEvent.SHIPPING_UPDATE
            if OrderStatus(updated["order_status"]) in SHIPPING_STATUSES
            else NotificationEvent.ORDER_UPDATED
        )
        await self._best_effort(f"{event.value} notification", updated, self.notifier.publish_order_event(event, updated))
        return updated

    async def list_orders(
        self,
        filters: OrderFilters,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> dict[str, Any]:
        """Admin order listing with pagination and dashboard stats."""
        orders, total = await self.store.list(filters, page=page, page_size=limit, sort_by=sort_by, sort_order=sort_order)
        return {
            "orders": orders,
            "pagination": PaginationInfo.build(page=page, limit=limit, total=total),
            "stats": await self.store.stats(),
        }

    async def get_order_for_user(self, user: UserContext, order_id: str) -> Order:
        """Get an order the caller may see: their own, or any order for admins.

        Raises:
            NotFoundError: Unknown order, or one the caller does not own.
        """
        order = await self.store.find_by_id(order_id)
        if not order or (not user.is_admin and order["user_id"] != str(user.user_id)):
            raise NotFoundError("Order not found")
        return order

    async def list_user_orders(self, user: UserContext, page: int = 1, limit: int = 50) -> list[Order]:
        """The caller's own orders, newest first."""
        orders, _ = await self.store.list({"user_id": str(user.user_id)}, page=page, page_size=limit)
        return orders

    async def delete_order(self, order_id: str) -> None:
        """Soft-delete an order (admin)."""
        await self.store.soft_delete(order_id)

    async def _best_effort(self, label: str, order: Order, action: Awaitable[Any]) -> None:
        try:
            await action
        except Exception as e:
            logger.error("%s failed for order %s: %s", label, order["id"], e, exc_info=True)
