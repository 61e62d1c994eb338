"""Liveness and readiness endpoints."""

import asyncio
import time
from typing import Any, Awaitable

from fastapi import APIRouter, Response, status

from storefront.core.supabase import check_database_connection
from storefront.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse
from storefront.services.payment_gateway import PaymentGateway

router = APIRouter(tags=["health"])


async def _timed(name: str, check: Awaitable[dict[str, Any]]) -> CheckResult:
    started = time.perf_counter()
    result = dict(await check)
    return CheckResult(
        name=name,
        healthy=result.pop("healthy"),
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
        error=result.pop("error", None),
        details=result or None,
    )


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health_check() -> HealthResponse:
    """Always 200 while the process serves requests; touches no dependency."""
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "The database or the payment gateway is not usable"}},
    summary="Readiness check",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Check the database and Stripe in parallel.

    The gateway check reports the configured mode and whether webhooks can
    be verified, so a deploy missing STRIPE_WEBHOOK_SECRET never receives
    traffic it would have to reject.
    """
    checks = await asyncio.gather(
        _timed("database", check_database_connection()),
        _timed("payment_gateway", PaymentGateway().check_health()),
    )

    ready = all(check.healthy for check in checks)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status=HealthStatus.HEALTHY if ready else HealthStatus.UNHEALTHY,
        checks=list(checks),
    )
