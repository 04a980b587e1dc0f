"""
Email service for low stock alerts.
Uses Flask-Mail for SMTP integration.
"""
import logging
from typing import Iterable, List

from flask import current_app
from flask_mail import Mail, Message

from mrp.services.inventory_service import low_stock_items
from mrp.utils.number_format import to_number

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents 500 errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return (
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def _recipients() -> List[str]:
    raw = current_app.config.get('LOW_STOCK_ALERT_TO') or ''
    return [addr.strip() for addr in raw.split(',') if addr.strip()]


def send_low_stock_alert(to_emails: list, items: list) -> bool:
    """Send one email listing every item below its reorder point."""
    try:
        if not _mail_enabled():
            logger.info(f"[MAIL DISABLED] Low stock alert skipped ({len(items)} items)")
            return True

        rows = "".join(
            f"""
            <tr>
                <td>{item.ipn}</td>
                <td>{item.description or ''}</td>
                <td align="center">{to_number(item.qty_on_hand)}</td>
                <td align="center">{to_number(item.reorder_point)}</td>
                <td align="center">{to_number(item.reorder_qty)}</td>
            </tr>
            """
            for item in items
        )

        html_body = f"""
        <h2>Low stock alert</h2>
        <table border="1" cellpadding="8" cellspacing="0" width="100%">
            <tr>
                <th>IPN</th>
                <th>Description</th>
                <th>On hand</th>
                <th>Reorder point</th>
                <th>Reorder qty</th>
            </tr>
            {rows}
        </table>
        """
        text_body = "\n".join(
            f"{item.ipn}: on hand {to_number(item.qty_on_hand)}, reorder point {to_number(item.reorder_point)}"
            for item in items
        )

        msg = Message(
            subject=f"Low stock: {', '.join(item.ipn for item in items[:5])}"
                    + (" ..." if len(items) > 5 else ""),
            recipients=to_emails,
            body=text_body,
            html=html_body,
        )

        mail.send(msg)
        logger.info(f"[EMAIL] Low stock alert sent to {len(to_emails)} recipients")
        return True

    except Exception:
        logger.exception("[EMAIL] Error sending low stock alert")
        return False


def alert_low_stock(session, ipns: Iterable[str]) -> list:
    """
    Check the IPNs touched by a committed transaction and email an alert for
    those now below their reorder point. Returns the low items found.

    Never raises: a failed alert must not fail the request that triggered it.
    """
    try:
        items = low_stock_items(session, ipns)
        if not items:
            return []
        recipients = _recipients()
        if not recipients:
            logger.info(f"[EMAIL] {len(items)} items below reorder point, no LOW_STOCK_ALERT_TO configured")
            return items
        send_low_stock_alert(recipients, items)
        return items
    except Exception as e:
        logger.error(f"[EMAIL] Low stock check failed: {e}")
        return []
