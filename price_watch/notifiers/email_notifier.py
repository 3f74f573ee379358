# price_watch/notifiers/email_notifier.py

"""Email price alerts sent through Resend."""

import html
import logging
from datetime import datetime, timezone

import resend

from price_watch.config.settings import Settings
from price_watch.errors import DeliveryFailure
from price_watch.models.alert import Alert
from price_watch.models.product import Product
from price_watch.notifiers.base_notifier import NotificationResult, Notifier

logger = logging.getLogger("price_watch.notifier")

_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: #667eea; color: white; padding: 30px; text-align: center; }
    .content { background: #f9fafb; padding: 30px; }
    .product { background: white; padding: 20px; border-radius: 8px; margin: 20px 0; }
    .product img { max-width: 200px; display: block; margin: 0 auto 20px; }
    .price { font-size: 32px; font-weight: bold; color: #10b981; text-align: center; }
    .target { text-decoration: line-through; color: #6b7280; font-size: 20px; }
    .savings { background: #10b981; color: white; padding: 10px 20px; text-align: center; font-weight: bold; }
    .button { display: inline-block; background: #ff9900; color: white; padding: 15px 40px; text-decoration: none; }
    .footer { text-align: center; color: #6b7280; margin-top: 30px; font-size: 14px; }
"""


def savings_percent(target_price: float | None, current_price: float) -> float:
    """Percentage by which *current_price* undercuts the explicit target."""
    if not target_price:
        return 0.0
    return (target_price - current_price) / target_price * 100


def build_subject(product: Product) -> str:
    """Subject line with the title trimmed to 50 characters."""
    return f"Price Drop Alert: {product.title[:50]}..."


def build_html(
    product: Product,
    alert: Alert,
    current_price: float,
    sent_at: datetime,
) -> str:
    """Render the HTML body of a price alert email."""
    title = html.escape(product.title)
    url = html.escape(product.url, quote=True)
    savings = savings_percent(alert.target_price, current_price)

    image_block = (
        f'<img src="{html.escape(product.image_url, quote=True)}" alt="Product">'
        if product.image_url
        else ""
    )
    if alert.target_price is not None:
        target_block = (
            f'<p style="text-align: center;"><span class="target">'
            f"Target: ${alert.target_price:.2f}</span></p>"
        )
    elif alert.predicted_price is not None:
        target_block = (
            f'<p style="text-align: center;">'
            f"Predicted good price: ${alert.predicted_price:.2f}</p>"
        )
    else:
        target_block = ""
    savings_block = (
        f'<div class="savings">Save {savings:.1f}% - Buy Now!</div>'
        if savings > 0
        else ""
    )

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><style>{_STYLE}</style></head>
<body>
  <div class="container">
    <div class="header">
      <h1>Price Drop Alert!</h1>
      <p>Your tracked product is now at your target price!</p>
    </div>
    <div class="content">
      <div class="product">
        {image_block}
        <h2 style="text-align: center;">{title}</h2>
        <div class="price">${current_price:.2f}</div>
        {target_block}
        {savings_block}
        <p style="text-align: center;">
          <a href="{url}" class="button">Buy Now on Amazon</a>
        </p>
      </div>
    </div>
    <div class="footer">
      <p>You're receiving this because you set up a price alert.</p>
      <p>ASIN: {html.escape(product.asin)} | Checked at {sent_at:%Y-%m-%d %H:%M} UTC</p>
    </div>
  </div>
</body>
</html>
"""


def build_text(
    product: Product,
    alert: Alert,
    current_price: float,
) -> str:
    """Plain-text alternative of the alert email."""
    lines = [
        "Price Drop Alert!",
        "",
        product.title,
        "",
        f"Current price: ${current_price:.2f}",
    ]
    if alert.target_price is not None:
        lines.append(f"Your target: ${alert.target_price:.2f}")
    elif alert.predicted_price is not None:
        lines.append(f"Predicted good price: ${alert.predicted_price:.2f}")
    lines += [
        "",
        f"Buy now: {product.url}",
        "",
        "---",
        f"ASIN: {product.asin}",
    ]
    return "\n".join(lines)


class EmailNotifier(Notifier):
    """Send email notifications via Resend."""

    def __init__(
        self,
        api_key: str | None = None,
        from_email: str | None = None,
    ) -> None:
        self.api_key = api_key or Settings.RESEND_API_KEY
        self.from_email = from_email or Settings.ALERT_FROM_EMAIL

        if self.api_key:
            resend.api_key = self.api_key

    def notify(
        self,
        destination: str,
        product: Product,
        alert: Alert,
        current_price: float,
    ) -> NotificationResult:
        """Email *destination* that *product* reached its target."""
        if not self.api_key:
            logger.warning(
                "RESEND_API_KEY not configured, email to %s not sent",
                destination,
            )
            raise DeliveryFailure(
                destination, "Email service not configured"
            )

        params: resend.Emails.SendParams = {
            "from": self.from_email,
            "to": [destination],
            "subject": build_subject(product),
            "html": build_html(
                product,
                alert,
                current_price,
                datetime.now(timezone.utc),
            ),
            "text": build_text(product, alert, current_price),
        }

        try:
            response = resend.Emails.send(params)
        except Exception as exc:
            logger.error(
                "Email send to %s failed: %s",
                destination,
                exc,
                exc_info=True,
            )
            raise DeliveryFailure(destination, str(exc)) from exc

        message_id = (
            response.get("id") if isinstance(response, dict) else None
        )
        logger.info(
            "Alert email for %s sent to %s (id=%s)",
            product.asin,
            destination,
            message_id,
        )
        return NotificationResult(
            destination=destination,
            message_id=message_id,
        )
