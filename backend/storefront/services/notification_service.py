"""
Notification delivery

Channels:
- Telegram (Bot API sendMessage) for clients with a linked chat and for
  the managers' chat
- Email over SMTP for clients without Telegram

The outbox decides *what* to send; this module renders and delivers it.
Delivery failures raise NotificationError so the dispatcher can count
attempts.
"""
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Dict, Optional

import requests
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.status_config import NotificationChannel, ORDER_STATUS_LABELS
from storefront.exceptions import NotificationError
from storefront.models.notification import NotificationOutbox
from storefront.models.user import User
from storefront.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Delivery:
    """A rendered message bound to one channel and recipient."""
    outbox_id: int
    channel: str
    target: str
    subject: str
    text: str


# ============================================================================
# Rendering
# ============================================================================

def render_status_changed(payload: Dict[str, Any]) -> str:
    new_status = payload.get("new_status", "")
    label = ORDER_STATUS_LABELS.get(new_status, new_status)
    lines = [
        f"📦 <b>Замовлення #{escape(str(payload.get('order_number', '')))}</b>",
        "",
        f"Статус змінено: <b>{escape(label)}</b>",
    ]
    if new_status == "shipped" and payload.get("tracking_number"):
        lines.append(f"📋 ТТН: <b>{escape(str(payload['tracking_number']))}</b>")
    if new_status == "cancelled":
        lines.append("\n❌ Ваше замовлення було скасовано.")
    if new_status == "completed":
        lines.append("\n✅ Дякуємо за покупку!")
    lines.append(f"\n{settings.APP_URL}/account/orders")
    return "\n".join(lines)


def render_order_created(payload: Dict[str, Any]) -> str:
    client_label = "Оптовий" if payload.get("client_type") == "wholesale" else "Роздрібний"
    lines = [
        f"🆕 <b>Нове замовлення #{escape(str(payload.get('order_number', '')))}</b>",
        "",
        f"👤 {escape(str(payload.get('contact_name') or ''))}",
        f"📱 {escape(str(payload.get('contact_phone') or ''))}",
        f"📧 {escape(str(payload['contact_email']))}" if payload.get("contact_email") else None,
        "",
        f"💰 Сума: <b>{payload.get('total_amount')} ₴</b>",
        f"📦 Товарів: {payload.get('items_count')}",
        f"🏷 Тип: {client_label}",
        f"🚚 Доставка: {payload.get('delivery_method')}",
        f"💳 Оплата: {payload.get('payment_method')}",
    ]
    return "\n".join(line for line in lines if line is not None)


def build_delivery(db: Session, row: NotificationOutbox) -> Optional[Delivery]:
    """
    Pick a channel and recipient for an outbox row.

    Returns None when nobody can be reached (no chat id, no email).
    """
    payload = row.payload or {}
    subject = f"Замовлення #{payload.get('order_number', '')}"

    if row.event == "order_created":
        if not settings.TELEGRAM_MANAGER_CHAT_ID:
            return None
        return Delivery(
            outbox_id=row.id,
            channel=NotificationChannel.TELEGRAM.value,
            target=str(settings.TELEGRAM_MANAGER_CHAT_ID),
            subject=subject,
            text=render_order_created(payload),
        )

    text = render_status_changed(payload)
    user = db.query(User).filter(User.id == row.user_id).first() if row.user_id else None
    if user is not None and user.telegram_chat_id:
        return Delivery(row.id, NotificationChannel.TELEGRAM.value, str(user.telegram_chat_id), subject, text)

    email = payload.get("contact_email") or (user.email if user is not None else None)
    if email:
        return Delivery(row.id, NotificationChannel.EMAIL.value, email, subject, text)
    return None


# ============================================================================
# Channels
# ============================================================================

class TelegramClient:
    """Telegram Bot API sender"""

    def __init__(self, token: Optional[str] = None, api_url: Optional[str] = None, timeout: Optional[float] = None):
        self.token = token if token is not None else settings.TELEGRAM_BOT_TOKEN
        self.api_url = (api_url or settings.TELEGRAM_API_URL).rstrip("/")
        self.timeout = timeout or settings.EXTERNAL_API_TIMEOUT

    def send_message(self, chat_id: str, text: str) -> None:
        if not self.token:
            raise NotificationError("Telegram", "Bot token not configured")
        try:
            response = requests.post(
                f"{self.api_url}/bot{self.token}/sendMessage",
                json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NotificationError("Telegram", f"Request failed: {e}")
        if not response.ok:
            raise NotificationError("Telegram", f"sendMessage returned {response.status_code}")


class EmailService:
    """Service for sending emails via SMTP"""

    def __init__(self):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME
        self.use_tls = settings.SMTP_TLS

    def _send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None
    ) -> bool:
        """
        Send an email via SMTP

        Returns True if successful, False otherwise
        """
        if not self.user or not self.password:
            logger.warning("SMTP credentials not configured - email not sent")
            logger.info(f"Would have sent email to {to_email}: {subject}")
            return False

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = to_email

            if text_body:
                msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.host, self.port, timeout=settings.EXTERNAL_API_TIMEOUT) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.user, self.password)
                server.sendmail(self.from_email, to_email, msg.as_string())

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {str(e)}")
            return False

    def send_order_notification(self, to_email: str, subject: str, text: str) -> bool:
        """Order status email; the Telegram HTML markup doubles as the body."""
        html_body = f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                {text.replace(chr(10), "<br>")}
            </div>
            <p style="padding: 15px; text-align: center; color: #666; font-size: 12px;">{escape(self.from_name)}</p>
        </body>
        </html>
        """
        plain = text.replace("<b>", "").replace("</b>", "")
        return self._send_email(to_email, f"[{self.from_name}] {subject}", html_body, plain)


class NotificationSender:
    """Routes a Delivery to its channel; raises NotificationError on failure."""

    def __init__(self, telegram: Optional[TelegramClient] = None, email: Optional[EmailService] = None):
        self.telegram = telegram or TelegramClient()
        self.email = email or EmailService()

    def send(self, delivery: Delivery) -> None:
        if delivery.channel == NotificationChannel.TELEGRAM.value:
            self.telegram.send_message(delivery.target, delivery.text)
        elif delivery.channel == NotificationChannel.EMAIL.value:
            if not self.email.send_order_notification(delivery.target, delivery.subject, delivery.text):
                raise NotificationError("Email", f"Delivery to {delivery.target} failed")
        else:
            raise NotificationError("Notifications", f"Unknown channel {delivery.channel}")
