"""Persistence for orders, including guarded status updates."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError

from storefront.api.middleware.error_handler import (
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from storefront.core.supabase import execute, get_supabase_client
from storefront.models.order import (
    Order,
    OrderCreate,
    OrderFilters,
    OrderStatus,
    PaymentStatus,
)
from storefront.services.order_state_machine import (
    plan_order_transition,
    plan_payment_transition,
)

logger = logging.getLogger(__name__)

TABLE = "orders"
REQUIRED_FIELDS = ("user_id", "items", "address", "payment_method", "subtotal_cents", "shipping_cents", "total_cents")
SORTABLE_COLUMNS = frozenset({"created_at", "updated_at", "total_cents", "order_status", "payment_status"})

# Postgres invalid_text_representation, raised for a malformed uuid literal
INVALID_TEXT_REPRESENTATION = "22P02"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderStore:
    """Durable CRUD for orders.

    Status changes are validated by the order state machine and written with
    a conditional update, so a concurrent writer that got there first makes
    the update match zero rows instead of being overwritten.
    """

    def __init__(self) -> None:
        """Initialize order store with database client."""
        self.client = get_supabase_client()

    async def _run(self, query: Any, action: str, by_id: bool = True) -> Any:
        """Execute a query, translating driver failures into store errors.

        Args:
            query: Built PostgREST request.
            action: What the query does, for the log line.
            by_id: The query filters on a caller-supplied order id, so a
                malformed id means no such order.

        Raises:
            NotFoundError: If by_id and the id is not a valid uuid.
            PersistenceError: On any other database or transport failure.
        """
        try:
            return await execute(query)
        except PostgrestAPIError as e:
            if by_id and e.code == INVALID_TEXT_REPRESENTATION:
                raise NotFoundError("Order not found") from e
            logger.error("Database error while %s: %s", action, e)
            raise PersistenceError() from e
        except httpx.HTTPError as e:
            logger.error("Database unreachable while %s: %s", action, e)
            raise PersistenceError() from e

    async def create(self, order: OrderCreate) -> Order:
        """Persist a new order.

        Args:
            order: Order fields; id and timestamps are assigned by the database.

        Returns:
            Order: The stored order row.

        Raises:
            ValidationError: If required fields are missing or totals disagree.
            PersistenceError: If the database write fails.
        """
        missing = [name for name in REQUIRED_FIELDS if order.get(name) in (None, [], {})]
        if missing:
            raise ValidationError(f"Order is missing required fields: {', '.join(missing)}")

        if order["total_cents"] != order["subtotal_cents"] + order["shipping_cents"]:
            raise ValidationError("Order total must equal subtotal plus shipping")

        # Every order starts pending/placed whatever the caller passed
        row = {
            **order,
            "payment_status": PaymentStatus.PENDING.value,
            "order_status": OrderStatus.PLACED.value,
            "is_active": True,
        }

        response = await self._run(
            self.client.table(TABLE).insert(row),
            f"inserting an order for user {order['user_id']}",
            by_id=False,
        )
        if not response.data:
            raise PersistenceError()

        created = response.data[0]
        logger.info("Order %s created for user %s", created["id"], created["user_id"])
        return created

    async def find_by_id(self, order_id: str) -> Order | None:
        """Get an active order by ID.

        Args:
            order_id: The order's ID.

        Returns:
            Order | None: The order or None if not found.

        Raises:
            NotFoundError: If order_id is not a valid order id.
        """
        response = await self._run(
            self.client.table(TABLE)
            .select("*")
            .eq("id", str(order_id))
            .eq("is_active", True)
            .maybe_single(),
            f"reading order {order_id}",
        )
        return response.data if response and response.data else None

    async def find_by_external_payment_id(
        self, external_order_id: str, user_id: str | None = None
    ) -> Order | None:
        """Get an active order by its gateway order ID.

        Args:
            external_order_id: Gateway order (checkout session) ID.
            user_id: When given, the order must also belong to this user.

        Returns:
            Order | None: The order or None if not found.
        """
        query = (
            self.client.table(TABLE)
            .select("*")
            .eq("external_order_id", external_order_id)
            .eq("is_active", True)
        )
        if user_id:
            query = query.eq("user_id", str(user_id))

        response = await self._run(
            query.maybe_single(), f"looking up gateway order {external_order_id}", by_id=False
        )
        return response.data if response and response.data else None

    async def find_by_external_capture_id(self, capture_id: str) -> Order | None:
        """Get an active order by its gateway capture ID.

        Args:
            capture_id: Gateway capture (charge) ID.

        Returns:
            Order | None: The order or None if not found.
        """
        response = await self._run(
            self.client.table(TABLE)
            .select("*")
            .eq("external_capture_id", capture_id)
            .eq("is_active", True)
            .maybe_single(),
            f"looking up capture {capture_id}",
            by_id=False,
        )
        return response.data if response and response.data else None

    async def _get_or_raise(self, order_id: str) -> Order:
        order = await self.find_by_id(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def update_status(self, order_id: str, new_status: OrderStatus | str) -> Order:
        """Move an order to a new fulfilment status.

        Args:
            order_id: The order's ID.
            new_status: Requested order status.

        Returns:
            Order: The updated order row.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidTransitionError: If the change is illegal or the order
                changed status concurrently.
        """
        order = await self._get_or_raise(order_id)
        next_status = plan_order_transition(order, new_status)

        update_data: dict[str, Any] = {
            "order_status": next_status.value,
            "updated_at": _now(),
        }
        if next_status is OrderStatus.DELIVERED:
            update_data["delivered_at"] = update_data["updated_at"]

        response = await self._run(
            self.client.table(TABLE)
            .update(update_data)
            .eq("id", str(order_id))
            .eq("order_status", order["order_status"]),
            f"updating status of order {order_id}",
        )
        if not response.data:
            raise InvalidTransitionError("Order status changed while updating; reload and try again")

        logger.info(
            "Order %s status %s -> %s", order_id, order["order_status"], next_status.value
        )
        return response.data[0]

    async def update_payment_status(
        self,
        order_id: str,
        new_status: PaymentStatus | str,
        expected_status: PaymentStatus | str | None = None,
        fields: dict[str, Any] | None = None,
    ) -> Order | None:
        """Change the payment status with an atomic compare-and-set.

        Args:
            order_id: The order's ID.
            new_status: Requested payment status.
            expected_status: Status the order must still have for the update to
                apply. Read from the order when omitted.
            fields: Extra columns to write in the same update (e.g. capture id).

        Returns:
            Order | None: The updated row, or None when the order no longer has
            the expected status (another writer already moved it).

        Raises:
            NotFoundError: If the order does not exist and no expected status was given.
            InvalidTransitionError: If expected -> new is not a legal edge.
        """
        if expected_status is None:
            order = await self._get_or_raise(order_id)
            expected_status = order["payment_status"]

        expected = PaymentStatus(expected_status)
        next_status = plan_payment_transition(expected, new_status)

        update_data = {
            **(fields or {}),
            "payment_status": next_status.value,
            "updated_at": _now(),
        }
        response = await self._run(
            self.client.table(TABLE)
            .update(update_data)
            .eq("id", str(order_id))
            .eq("payment_status", expected.value),
            f"updating payment of order {order_id}",
        )
        if not response.data:
            logger.info(
                "Payment status of order %s was not %s; %s not applied",
                order_id,
                expected.value,
                next_status.value,
            )
            return None

        logger.info("Order %s payment %s -> %s", order_id, expected.value, next_status.value)
        return response.data[0]

    async def set_external_order_id(self, order_id: str, external_order_id: str) -> Order:
        """Link an order to its gateway authorization.

        Args:
            order_id: The order's ID.
            external_order_id: Gateway order ID.

        Returns:
            Order: The updated order row.
        """
        response = await self._run(
            self.client.table(TABLE)
            .update({"external_order_id": external_order_id, "updated_at": _now()})
            .eq("id", str(order_id)),
            f"linking order {order_id} to {external_order_id}",
        )
        if not response.data:
            raise NotFoundError("Order not found")
        return response.data[0]

    async def soft_delete(self, order_id: str) -> None:
        """Hide an order from every query while keeping it for audit.

        Args:
            order_id: The order's ID.

        Raises:
            NotFoundError: If no active order has this ID.
        """
        response = await self._run(
            self.client.table(TABLE)
            .update({"is_active": False, "updated_at": _now()})
            .eq("id", str(order_id))
            .eq("is_active", True),
            f"deleting order {order_id}",
        )
        if not response.data:
            raise NotFoundError("Order not found")
        logger.info("Order %s soft-deleted", order_id)

    def _filtered_query(self, filters: OrderFilters, count: bool) -> Any:
        query = self.client.table(TABLE).select("*", count="exact") if count else self.client.table(TABLE).select("*")
        query = query.eq("is_active", filters.get("is_active", True))
        if filters.get("user_id"):
            query = query.eq("user_id", str(filters["user_id"]))
        if filters.get("order_status"):
            query = query.eq("order_status", filters["order_status"])
        if filters.get("payment_status"):
            query = query.eq("payment_status", filters["payment_status"])
        if filters.get("start_date"):
            query = query.gte("created_at", filters["start_date"].isoformat())
        if filters.get("end_date"):
            query = query.lte("created_at", filters["end_date"].isoformat())
        return query

    async def list(
        self,
        filters: OrderFilters | None = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[Order], int]:
        """List orders with filtering, sorting and pagination.

        The free-text user_email filter is applied after fetching, so when it
        is present the page is cut in memory.

        Args:
            filters: Optional filters.
            page: 1-based page number.
            page_size: Orders per page.
            sort_by: Column to sort by.
            sort_order: "asc" or "desc".

        Returns:
            tuple: (orders on the requested page, total matching orders).
        """
        filters = filters or {}
        if sort_by not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot sort orders by {sort_by}")

        desc = sort_order.lower() != "asc"
        start = (page - 1) * page_size
        email_query = (filters.get("user_email") or "").strip().lower()

        if email_query:
            response = await self._run(
                self._filtered_query(filters, count=False).order(sort_by, desc=desc),
                "searching orders by email",
                by_id=False,
            )
            matches = [
                order
                for order in (response.data or [])
                if email_query in (order.get("user_email") or "").lower()
                or email_query in ((order.get("address") or {}).get("email") or "").lower()
            ]
            return matches[start:start + page_size], len(matches)

        response = await self._run(
            self._filtered_query(filters, count=True)
            .order(sort_by, desc=desc)
            .range(start, start + page_size - 1),
            "listing orders",
            by_id=False,
        )
        orders = response.data or []
        total = response.count if response.count is not None else len(orders)
        return orders, total

    async def stats(self) -> dict[str, int]:
        """Aggregate counters for the admin order dashboard.

        Returns:
            dict: total_orders, total_revenue_cents, pending_orders,
            delivered_orders, pending_payments, completed_payments.
        """
        response = await self._run(
            self.client.table(TABLE)
            .select("order_status, payment_status, total_cents")
            .eq("is_active", True),
            "computing order stats",
            by_id=False,
        )
        rows = response.data or []

        completed = [r for r in rows if r["payment_status"] == PaymentStatus.COMPLETED.value]
        return {
            "total_orders": len(rows),
            "total_revenue_cents": sum(r["total_cents"] for r in completed),
            "pending_orders": sum(1 for r in rows if r["order_status"] == OrderStatus.PLACED.value),
            "delivered_orders": sum(1 for r in rows if r["order_status"] == OrderStatus.DELIVERED.value),
            "pending_payments": sum(1 for r in rows if r["payment_status"] == PaymentStatus.PENDING.value),
            "completed_payments": len(completed),
        }

    async def list_stale_pending(self, payment_method: str, created_before: datetime) -> list[Order]:
        """Find orders still waiting on payment that were created before a cutoff.

        Args:
            payment_method: Payment method to match.
            created_before: Only orders created before this instant.

        Returns:
            list[Order]: Matching orders, oldest first.
        """
        response = await self._run(
            self.client.table(TABLE)
            .select("*")
            .eq("is_active", True)
            .eq("payment_method", payment_method)
            .eq("payment_status", PaymentStatus.PENDING.value)
            .lt("created_at", created_before.isoformat())
            .order("created_at"),
            "finding stale pending orders",
            by_id=False,
        )
        return response.data or []
