"""Admin view of live notification connections."""

from fastapi import APIRouter

from storefront.api.deps import AdminUser, Notifier
from storefront.schemas.order import ConnectionStatsResponse

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get(
    "/connections",
    response_model=ConnectionStatsResponse,
    summary="Live connections",
    description="Admin only. Counts of connected users, admins and open order rooms on this process.",
)
async def connection_stats(admin: AdminUser, notifier: Notifier) -> ConnectionStatsResponse:
    return ConnectionStatsResponse.model_validate(notifier.registry.snapshot())
