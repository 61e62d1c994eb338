"""Email service using Resend for transactional emails."""

import logging
from typing import Any

import resend

from storefront.core.config import get_settings

logger = logging.getLogger(__name__)


def format_cents(cents: int, currency: str) -> str:
    """Render minor units as a display amount, e.g. 2300 -> "$23.00"."""
    symbol = "$" if currency.lower() == "usd" else f"{currency.upper()} "
    return f"{symbol}{cents / 100:,.2f}"


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url

    async def send_order_confirmation(self, order: dict[str, Any]) -> dict[str, Any]:
        """Send an order confirmation to the address on the order.

        Args:
            order: The placed (COD) or paid (gateway) order.

        Returns:
            dict: success flag and the Resend email ID, or the error.
        """
        if not self.enabled:
            logger.debug("Resend not configured; skipping confirmation for order %s", order["id"])
            return {"success": False, "error": "email disabled"}

        to_email = order["address"]["email"]
        currency = order["currency"]
        order_url = f"{self.frontend_url}/orders/{order['id']}"

        rows = "".join(
            f"<tr><td>{item['name']} ({item['color']})</td>"
            f"<td align=\"center\">{item['quantity']}</td>"
            f"<td align=\"right\">{format_cents(item['unit_amount_cents'] * item['quantity'], currency)}</td></tr>"
            for item in order["items"]
        )
        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Order confirmed</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="font-size: 22px;">Thanks for your order, {order['address']['first_name']}!</h1>
    <p>Order <strong>#{order['id']}</strong> has been received.</p>
    <table width="100%" cellpadding="6" style="border-collapse: collapse;">
        <tr><th align="left">Item</th><th>Qty</th><th align="right">Price</th></tr>
        {rows}
        <tr><td colspan="2">Subtotal</td><td align="right">{format_cents(order['subtotal_cents'], currency)}</td></tr>
        <tr><td colspan="2">Shipping</td><td align="right">{format_cents(order['shipping_cents'], currency)}</td></tr>
        <tr><td colspan="2"><strong>Total</strong></td><td align="right"><strong>{format_cents(order['total_cents'], currency)}</strong></td></tr>
    </table>
    <p><a href="{order_url}">Track your order</a></p>
</body>
</html>
"""

        text_content = f"""
Thanks for your order, {order['address']['first_name']}!

Order #{order['id']} has been received.
Total: {format_cents(order['total_cents'], currency)}

Track your order: {order_url}
"""

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": f"Order confirmed #{order['id']}",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Order confirmation sent to %s, id: %s", to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send order confirmation to %s: %s", to_email, str(e))
            return {"success": False, "error": str(e)}
