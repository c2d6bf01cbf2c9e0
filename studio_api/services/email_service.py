"""Transactional email through the Resend HTTP API."""

import html
import logging
import os
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from studio_api.exceptions import NotFound
from studio_api.models.orm_models import ClassEnrollment, Client, StudioClass
from studio_api.services.base import BaseService
from studio_api.services.enrollment_service import UPCOMING_STATUSES
from studio_api.utils import iso

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

EXPIRY_ALERTS = {
    "subscription_expiry": ("Your subscription is expiring soon", "Renew Subscription"),
    "payment_due": ("Payment due reminder", "Pay Now"),
    "top_up_reminder": ("Account top-up reminder", "Top Up Account"),
    "membership_expiry": ("Your membership is expiring soon", "Renew Membership"),
    "package_expiry": ("Your package is expiring soon", "Extend Package"),
}


class EmailService(BaseService):
    """Builds reminder/welcome emails and posts them to Resend."""

    def __init__(self, db: Session):
        super().__init__(db)

    def _api_key(self) -> str:
        return (os.getenv("RESEND_API_KEY") or "").strip()

    def _sender(self) -> str:
        return (os.getenv("EMAIL_FROM") or "Studio <noreply@example.com>").strip()

    def _timeout_seconds(self) -> float:
        try:
            return float(os.getenv("EMAIL_SEND_TIMEOUT_SECONDS", "15") or 15)
        except Exception:
            return 15.0

    def send(self, to: str, subject: str, body_html: str) -> Dict[str, Any]:
        """Send one email. Raises RuntimeError when Resend rejects it or no key is set."""
        api_key = self._api_key()
        if not api_key:
            logger.warning(f"RESEND_API_KEY not configured, skipping email to {to}")
            raise RuntimeError("Email provider not configured")
        resp = requests.post(
            RESEND_API_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={"from": self._sender(), "to": [to], "subject": subject, "html": body_html},
            timeout=self._timeout_seconds(),
        )
        try:
            data = resp.json() if resp.content else {}
        except Exception:
            data = {}
        if resp.status_code >= 400:
            raise RuntimeError(str(data.get("message") or data or f"HTTP {resp.status_code}"))
        return data if isinstance(data, dict) else {}

    # ========== Templates ==========

    @staticmethod
    def _layout(title: str, paragraphs: List[str]) -> str:
        body = "".join(f"<p>{p}</p>" for p in paragraphs)
        return f"<div style=\"font-family: sans-serif\"><h2>{html.escape(title)}</h2>{body}</div>"

    def _class_reminder_html(self, client: Client, c: StudioClass, message: Optional[str]) -> str:
        lines = [
            f"Hi {html.escape(client.first_name)},",
            f"This is a reminder for <strong>{html.escape(c.name)}</strong> on "
            f"{iso(c.class_date)} at {c.start_time.strftime('%H:%M')}.",
        ]
        if c.location:
            lines.append(f"Location: {html.escape(c.location)}")
        if message:
            lines.append(html.escape(message))
        lines.append("See you there!")
        return self._layout("Class reminder", lines)

    @staticmethod
    def _expiry_alert_text(alert_type: str, first_name: str, details: Dict[str, Any]) -> str:
        days = details.get("days_remaining")
        in_days = f"in {days} day{'' if days == 1 else 's'}" if days is not None else "soon"
        if alert_type == "subscription_expiry":
            return f"Hi {first_name}, your subscription is expiring {in_days}. Renew now to keep training."
        if alert_type == "payment_due":
            amount = details.get("amount")
            due = f"{details.get('currency') or 'USD'} {amount:.2f}" if amount is not None else "A payment"
            return f"Hi {first_name}, {due} is due. Please complete your payment to keep your access."
        if alert_type == "top_up_reminder":
            return f"Hi {first_name}, your account balance is running low. Top up to keep booking sessions."
        if alert_type == "membership_expiry":
            kind = details.get("membership_type") or "studio"
            return f"Hi {first_name}, your {kind} membership is expiring {in_days}. Renew to keep your benefits active."
        package = details.get("package_name") or "training"
        return f"Hi {first_name}, your {package} package is expiring {in_days}. Extend it to continue your programme."

    # ========== Operations ==========

    def send_class_reminder(
        self, class_id: int, *, reminder_type: str = "all", message: Optional[str] = None
    ) -> Dict[str, Any]:
        c = self.db.get(StudioClass, class_id)
        if c is None:
            raise NotFound("Class not found")
        clients = self.db.scalars(
            select(Client)
            .join(ClassEnrollment, ClassEnrollment.client_id == Client.id)
            .where(ClassEnrollment.class_id == class_id, ClassEnrollment.status.in_(UPCOMING_STATUSES))
            .order_by(Client.last_name.asc(), Client.first_name.asc())
        ).all()

        sent = {"email": 0, "whatsapp": 0, "failed": 0}
        details: List[Dict[str, Any]] = []
        subject = f"Reminder: {c.name} on {iso(c.class_date)}"
        # "all" and "email" both go out by email; whatsapp stays at 0
        for client in clients:
            try:
                self.send(client.email, subject, self._class_reminder_html(client, c, message))
                sent["email"] += 1
                details.append({"client_id": client.id, "email": client.email, "status": "sent"})
            except Exception as e:
                logger.error(f"Error sending class reminder to {client.email}: {e}")
                sent["failed"] += 1
                details.append(
                    {"client_id": client.id, "email": client.email, "status": "failed", "error": str(e)}
                )

        logger.info(f"Class {class_id} reminders ({reminder_type}): {sent}")
        return {
            "classInfo": {
                "id": c.id,
                "name": c.name,
                "date": iso(c.class_date),
                "start_time": iso(c.start_time),
                "end_time": iso(c.end_time),
                "location": c.location,
            },
            "sent": sent,
            "details": details,
        }

    def send_client_reminder(
        self, client_id: int, *, subject: Optional[str] = None, message: Optional[str] = None
    ) -> Dict[str, Any]:
        client = self.db.get(Client, client_id)
        if client is None:
            raise NotFound("Client not found")
        text = message or "This is a friendly reminder from your studio."
        body = self._layout("Reminder", [f"Hi {html.escape(client.first_name)},", html.escape(text)])
        try:
            result = self.send(client.email, subject or "Reminder from your studio", body)
        except Exception as e:
            logger.error(f"Error sending reminder to client {client_id}: {e}")
            return {"success": False, "client_id": client_id, "error": str(e)}
        return {"success": True, "client_id": client_id, "id": result.get("id")}

    def send_welcome(self, email: str, first_name: Optional[str]) -> bool:
        site_url = (os.getenv("SITE_URL") or "").rstrip("/")
        lines = [f"Hi {html.escape(first_name or 'there')},", "Welcome to the studio. Your account is ready."]
        if site_url:
            lines.append(f"<a href=\"{site_url}/login\">Sign in</a> to book your first class.")
        try:
            self.send(email, "Welcome!", self._layout("Welcome", lines))
            return True
        except Exception as e:
            logger.warning(f"Welcome email to {email} not sent: {e}")
            return False

    def send_expiry_alert(
        self, to: str, first_name: str, last_name: str, alert_type: str, **details: Any
    ) -> Dict[str, Any]:
        """Send one expiry or payment alert. Raises like ``send``."""
        if alert_type not in EXPIRY_ALERTS:
            raise ValueError(f"Invalid alert type: {alert_type}")
        subject, action = EXPIRY_ALERTS[alert_type]
        lines = [html.escape(self._expiry_alert_text(alert_type, first_name, details))]
        if details.get("expiry_date"):
            lines.append(f"Expiry date: {iso(details['expiry_date'])}")
        if details.get("action_url"):
            lines.append(f"<a href=\"{html.escape(details['action_url'], quote=True)}\">{action}</a>")
        lines.append("This is an automated message. Please do not reply to this email.")
        result = self.send(to, subject, self._layout(subject, lines))
        logger.info(f"Expiry alert {alert_type} sent to {to} ({first_name} {last_name})")
        return result

    def send_password_reset(self, email: str, first_name: Optional[str], link: str) -> Dict[str, Any]:
        lines = [
            f"Hi {html.escape(first_name or 'there')},",
            "We received a request to reset your password.",
            f"<a href=\"{html.escape(link, quote=True)}\">Choose a new password</a>",
            "If you did not ask for this, you can ignore this email.",
        ]
        return self.send(email, "Reset your password", self._layout("Password reset", lines))
