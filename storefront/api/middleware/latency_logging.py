"""Request latency logging middleware."""

import logging
import time
from typing import Callable

from fastapi import Request, Response

from storefront.core.config import get_settings

logger = logging.getLogger(__name__)

# Thresholds for log levels (in milliseconds)
SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000

# POSTs under this prefix may wait on the payment gateway
GATEWAY_PATH_PREFIX = "/api/v1/orders"

QUIET_PATHS = ("/health", "/health/ready")


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, path, status and latency of every request.

    Slow requests are logged at warning or error level. Order placement and
    payment endpoints get the gateway timeout added to their thresholds
    since they wait on the payment provider.

    Args:
        request: The incoming request.
        call_next: The next middleware/handler in the chain.

    Returns:
        Response: The response from the handler.
    """
    start_time = time.perf_counter()
    method = request.method
    path = request.url.path

    response = None
    error_occurred = False

    try:
        response = await call_next(request)
        return response
    except Exception:
        error_occurred = True
        raise
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500
        log_msg = "%s %s - %d - %.2fms"
        args = (method, path, status_code, latency_ms)

        slow_ms = SLOW_REQUEST_THRESHOLD_MS
        very_slow_ms = VERY_SLOW_REQUEST_THRESHOLD_MS
        if method == "POST" and path.startswith(GATEWAY_PATH_PREFIX):
            gateway_ms = 1000 * get_settings().gateway_timeout_seconds
            slow_ms += gateway_ms
            very_slow_ms += gateway_ms

        if path in QUIET_PATHS:
            logger.debug(log_msg, *args)
        elif error_occurred or status_code >= 500:
            logger.error(log_msg, *args)
        elif latency_ms > very_slow_ms:
            logger.error("VERY SLOW REQUEST: " + log_msg, *args)
        elif latency_ms > slow_ms:
            logger.warning("SLOW REQUEST: " + log_msg, *args)
        elif status_code >= 400:
            logger.warning(log_msg, *args)
        else:
            logger.info(log_msg, *args)
