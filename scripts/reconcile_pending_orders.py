#!/usr/bin/env python
"""Script to settle online-payment orders that are stuck in pending.

Orders are saved before the gateway is contacted, so a crash, an abandoned
checkout or a lost webhook can leave an order pending. This script:
1. Finds gateway orders still pending after --older-than minutes
2. Asks the gateway for the state of each authorization
3. Captures approved payments, records completed ones and fails voided ones

Usage:
    python scripts/reconcile_pending_orders.py [--older-than 30] [--dry-run]

Requirements:
    - STRIPE_SECRET_KEY and Supabase environment variables must be set

Note:
    - Live notifications are not delivered from this process; clients pick
      up the new state from the API.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from storefront.api.middleware.error_handler import APIError
from storefront.core.stripe import configure_stripe
from storefront.models.order import PaymentMethod
from storefront.services.notification_service import ConnectionRegistry, NotificationService
from storefront.services.order_lifecycle_service import OrderLifecycleService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def reconcile_pending_orders(older_than_minutes: int, dry_run: bool = False) -> dict[str, int]:
    """Reconcile every stale pending gateway order.

    Args:
        older_than_minutes: Only orders created at least this long ago.
        dry_run: List the orders without touching them.

    Returns:
        dict: Count of orders per resulting payment status, plus errors.
    """
    service = OrderLifecycleService(NotificationService(ConnectionRegistry()))
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)

    orders = await service.store.list_stale_pending(PaymentMethod.GATEWAY.value, cutoff)
    logger.info("Found %d pending gateway order(s) created before %s", len(orders), cutoff.isoformat())

    results: dict[str, int] = {"errors": 0}
    for order in orders:
        if dry_run:
            logger.info(
                "[dry run] order %s, external id %s, created %s",
                order["id"],
                order.get("external_order_id"),
                order["created_at"],
            )
            continue

        try:
            updated = await service.reconcile_payment(order["id"])
        except APIError as e:
            logger.error("Could not reconcile order %s: %s", order["id"], e.message)
            results["errors"] += 1
            continue

        status = updated["payment_status"]
        results[status] = results.get(status, 0) + 1
        logger.info("Order %s: payment %s", order["id"], status)

    return results


async def main() -> None:
    """Main entry point for the script."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--older-than", type=int, default=30, help="Minimum order age in minutes")
    parser.add_argument("--dry-run", action="store_true", help="List orders without reconciling them")
    args = parser.parse_args()

    configure_stripe()

    logger.info("=" * 60)
    logger.info("Reconciling pending gateway orders")
    logger.info("=" * 60)

    results = await reconcile_pending_orders(args.older_than, dry_run=args.dry_run)

    logger.info("Summary: %s", ", ".join(f"{k}={v}" for k, v in sorted(results.items())))
    if results["errors"]:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
