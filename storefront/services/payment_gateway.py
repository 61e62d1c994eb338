"""Payment gateway adapter wrapping Stripe.

The rest of the application sees three operations (create, capture, query an
authorization) and typed errors. An authorization is a Stripe Checkout
Session whose PaymentIntent uses manual capture: the customer approves on the
hosted page, funds are reserved, and the capture call moves them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import stripe

from storefront.api.middleware.error_handler import (
    AuthenticationError,
    GatewayRejectedError,
    GatewayUnavailableError,
    ValidationError,
)
from storefront.core.config import get_settings
from storefront.core.stripe import get_stripe

logger = logging.getLogger(__name__)

# Stripe error code for capturing an intent that is not awaiting capture
UNEXPECTED_STATE = "payment_intent_unexpected_state"


class CaptureStatus(str, Enum):
    """Outcome of a capture call. Anything but COMPLETED is a failure."""

    COMPLETED = "completed"
    NOT_COMPLETED = "not_completed"


class AuthorizationState(str, Enum):
    """Gateway-side state of an authorization."""

    CREATED = "created"
    APPROVED = "approved"
    COMPLETED = "completed"
    VOIDED = "voided"


@dataclass(frozen=True)
class LineAmount:
    """One priced line for the gateway."""

    name: str
    unit_amount_cents: int
    quantity: int


@dataclass(frozen=True)
class AmountBreakdown:
    """What the customer is charged, in the base currency's minor units."""

    lines: list[LineAmount]
    shipping_cents: int

    @property
    def item_total_cents(self) -> int:
        return sum(line.unit_amount_cents * line.quantity for line in self.lines)

    @property
    def total_cents(self) -> int:
        return self.item_total_cents + self.shipping_cents


@dataclass(frozen=True)
class ReturnUrls:
    """Where the gateway sends the customer after approving or cancelling."""

    success_url: str
    cancel_url: str


@dataclass(frozen=True)
class AuthorizationResult:
    external_order_id: str
    approval_links: list[dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class CaptureResult:
    capture_id: str | None
    status: CaptureStatus


@dataclass(frozen=True)
class AuthorizationInfo:
    external_order_id: str
    state: AuthorizationState
    capture_id: str | None = None


def _translate_stripe_error(operation: str, error: stripe.error.StripeError) -> Exception:
    """Map a Stripe exception to the gateway error taxonomy."""
    if isinstance(
        error,
        (stripe.error.InvalidRequestError, stripe.error.CardError, stripe.error.PermissionError),
    ):
        logger.warning("Gateway rejected %s: %s", operation, error)
        return GatewayRejectedError()

    logger.error("Gateway unavailable during %s: %s", operation, error)
    return GatewayUnavailableError()


def _intent_capture_id(intent: Any) -> str | None:
    return getattr(intent, "latest_charge", None) or getattr(intent, "id", None)


class PaymentGateway:
    """Stripe-backed payment gateway adapter."""

    def __init__(self) -> None:
        """Initialize gateway adapter with the Stripe client and settings."""
        self.stripe = get_stripe()
        self.settings = get_settings()

    def _ensure_configured(self) -> None:
        if not self.settings.stripe_secret_key:
            logger.error("Gateway call attempted without STRIPE_SECRET_KEY")
            raise GatewayUnavailableError()

    async def create_authorization(
        self,
        amount: AmountBreakdown,
        shipping_address: dict[str, Any],
        return_urls: ReturnUrls,
        reference: str,
    ) -> AuthorizationResult:
        """Create a payable gateway order awaiting customer approval.

        Args:
            amount: Line and shipping amounts in the base currency.
            shipping_address: Address snapshot from the order.
            return_urls: Success and cancel redirect targets.
            reference: Our order ID; also the gateway idempotency key.

        Returns:
            AuthorizationResult: Gateway order ID and customer approval links.

        Raises:
            ValidationError: If the total is below the gateway minimum.
            GatewayRejectedError: If the gateway refuses the request.
            GatewayUnavailableError: On network failure, timeout or gateway outage.
        """
        if amount.total_cents < self.settings.gateway_min_amount_cents:
            raise ValidationError(
                f"Order total must be at least {self.settings.gateway_min_amount_cents} cents "
                "to pay online"
            )
        self._ensure_configured()

        currency = self.settings.base_currency
        metadata = {"order_id": reference}
        line_items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": line.name},
                    "unit_amount": line.unit_amount_cents,
                },
                "quantity": line.quantity,
            }
            for line in amount.lines
        ]

        try:
            session = await self.stripe.checkout.Session.create_async(
                mode="payment",
                line_items=line_items,
                shipping_options=[
                    {
                        "shipping_rate_data": {
                            "type": "fixed_amount",
                            "display_name": "Standard shipping",
                            "fixed_amount": {"amount": amount.shipping_cents, "currency": currency},
                        }
                    }
                ],
                payment_intent_data={
                    "capture_method": "manual",
                    "metadata": metadata,
                    "shipping": {
                        "name": f"{shipping_address['first_name']} {shipping_address['last_name']}",
                        "phone": shipping_address.get("phone"),
                        "address": {
                            "line1": shipping_address["street"],
                            "city": shipping_address["city"],
                            "state": shipping_address["state"],
                            "postal_code": shipping_address["zipcode"],
                            "country": shipping_address["country"],
                        },
                    },
                },
                customer_email=shipping_address.get("email"),
                client_reference_id=reference,
                metadata=metadata,
                success_url=return_urls.success_url,
                cancel_url=return_urls.cancel_url,
                idempotency_key=f"authorize-{reference}",
            )
        except stripe.error.StripeError as e:
            raise _translate_stripe_error("create_authorization", e) from e

        logger.info("Gateway authorization %s created for order %s", session.id, reference)
        return AuthorizationResult(
            external_order_id=session.id,
            approval_links=[{"rel": "approve", "href": session.url, "method": "GET"}],
        )

    async def capture_authorization(self, external_order_id: str) -> CaptureResult:
        """Finalize an approved authorization.

        Capturing an authorization that was already captured reports
        COMPLETED with the original capture ID.

        Args:
            external_order_id: Gateway order ID from create_authorization.

        Returns:
            CaptureResult: Capture ID and COMPLETED or NOT_COMPLETED.

        Raises:
            GatewayRejectedError: If the gateway refuses the capture.
            GatewayUnavailableError: On network failure, timeout or gateway outage.
        """
        self._ensure_configured()

        try:
            session = await self.stripe.checkout.Session.retrieve_async(external_order_id)
            intent_id = session.payment_intent
            if not intent_id:
                logger.info("Authorization %s has not been approved yet", external_order_id)
                return CaptureResult(capture_id=None, status=CaptureStatus.NOT_COMPLETED)

            try:
                intent = await self.stripe.PaymentIntent.capture_async(
                    intent_id,
                    idempotency_key=f"capture-{external_order_id}",
                )
            except stripe.error.InvalidRequestError as e:
                if getattr(e, "code", None) != UNEXPECTED_STATE:
                    raise
                intent = await self.stripe.PaymentIntent.retrieve_async(intent_id)
        except stripe.error.StripeError as e:
            raise _translate_stripe_error("capture_authorization", e) from e

        if intent.status != "succeeded":
            logger.warning(
                "Capture of %s left payment intent in status %s", external_order_id, intent.status
            )
            return CaptureResult(capture_id=None, status=CaptureStatus.NOT_COMPLETED)

        return CaptureResult(capture_id=_intent_capture_id(intent), status=CaptureStatus.COMPLETED)

    async def query_authorization(self, external_order_id: str) -> AuthorizationInfo:
        """Read the current gateway state of an authorization.

        Args:
            external_order_id: Gateway order ID.

        Returns:
            AuthorizationInfo: State and, once completed, the capture ID.

        Raises:
            GatewayRejectedError: If the gateway does not know the ID.
            GatewayUnavailableError: On network failure, timeout or gateway outage.
        """
        self._ensure_configured()

        try:
            session = await self.stripe.checkout.Session.retrieve_async(
                external_order_id, expand=["payment_intent"]
            )
        except stripe.error.StripeError as e:
            raise _translate_stripe_error("query_authorization", e) from e

        intent = session.payment_intent
        if session.status == "expired":
            state = AuthorizationState.VOIDED
        elif not intent:
            state = AuthorizationState.CREATED
        elif intent.status == "succeeded":
            state = AuthorizationState.COMPLETED
        elif intent.status == "requires_capture":
            state = AuthorizationState.APPROVED
        elif intent.status == "canceled":
            state = AuthorizationState.VOIDED
        else:
            state = AuthorizationState.CREATED

        capture_id = _intent_capture_id(intent) if state is AuthorizationState.COMPLETED else None
        return AuthorizationInfo(
            external_order_id=external_order_id, state=state, capture_id=capture_id
        )

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Verify Stripe webhook signature and return event.

        Args:
            payload: Raw webhook payload bytes.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: Verified Stripe event.

        Raises:
            AuthenticationError: If the signature or payload does not check
                out, or no webhook secret is configured to check it against.
        """
        if not self.settings.stripe_webhook_secret:
            logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not set")
            raise AuthenticationError("Webhook secret is not configured")

        try:
            return self.stripe.Webhook.construct_event(
                payload, sig_header, self.settings.stripe_webhook_secret
            )
        except (stripe.error.SignatureVerificationError, ValueError) as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise AuthenticationError("Invalid webhook signature") from e

    async def check_health(self) -> dict[str, Any]:
        """Report gateway readiness: keys present and Stripe answering.

        Returns:
            dict: 'healthy', 'mode', 'webhook_secret_configured' and, when
            unhealthy, 'error'.
        """
        result: dict[str, Any] = {
            "healthy": False,
            "mode": self.settings.gateway_mode,
            "webhook_secret_configured": bool(self.settings.stripe_webhook_secret),
        }
        if not self.settings.stripe_secret_key:
            result["error"] = "Missing STRIPE_SECRET_KEY"
            return result
        if not result["webhook_secret_configured"]:
            result["error"] = "Missing STRIPE_WEBHOOK_SECRET"
            return result

        try:
            await self.stripe.Balance.retrieve_async()
        except stripe.error.StripeError as e:
            result["error"] = f"Stripe unreachable: {e.__class__.__name__}"
            return result

        result["healthy"] = True
        return result
