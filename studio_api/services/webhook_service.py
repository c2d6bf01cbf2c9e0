"""
Stripe webhook reconciliation.

Every delivery is verified, claimed in ``stripe_webhook_events`` by event id,
and applied in a single transaction. A processed event is acknowledged as a
duplicate without side effects; a failed one may be retried by Stripe.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio_api.exceptions import StudioError, ValidationFailed
from studio_api.models.orm_models import Client, Invoice, StripePayment, StripeWebhookEvent
from studio_api.services.base import BaseService
from studio_api.services.community_event_service import EVENT_REGISTRATION_TYPE, CommunityEventService
from studio_api.services.stripe_gateway import StripeGateway
from studio_api.utils import parse_int, utcnow

logger = logging.getLogger(__name__)


class WebhookService(BaseService):
    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None):
        super().__init__(db)
        self.gateway = gateway or StripeGateway()
        self.events = CommunityEventService(db, gateway=self.gateway)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "invoice.paid": self._on_invoice_paid,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_payment_failed,
            "invoice.sent": self._on_invoice_sent,
            "checkout.session.completed": self._on_checkout_completed,
            "payment_intent.succeeded": self._on_payment_intent_succeeded,
            "payment_intent.payment_failed": self._on_payment_intent_failed,
        }

    # =========================================================================
    # Entry point
    # =========================================================================

    def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not self.gateway.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured")
            raise StudioError("Webhook secret not configured", status_code=503)
        if not signature:
            raise ValidationFailed("Missing Stripe-Signature header")
        try:
            self.gateway.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise ValidationFailed("Invalid signature")

        event = json.loads(payload)
        event_id = str(event.get("id") or "")
        event_type = str(event.get("type") or "")
        if not event_id:
            raise ValidationFailed("Event id missing")

        if not self._claim(event_id, event_type):
            logger.info(f"Duplicate webhook {event_id} ({event_type}) ignored")
            return {"received": True, "duplicate": True}

        obj = ((event.get("data") or {}).get("object")) or {}
        try:
            handler = self._handlers.get(event_type)
            if handler is None:
                logger.info(f"Unhandled webhook event type: {event_type}")
            else:
                handler(obj)
            self._set_status(event_id, "processed")
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Error processing webhook {event_id} ({event_type})")
            self._set_status(event_id, "failed", error=str(e)[:2000])
            self._commit()
            raise StudioError("Webhook processing failed", status_code=500)
        logger.info(f"Webhook {event_id} ({event_type}) processed")
        return {"received": True}

    def _claim(self, event_id: str, event_type: str) -> bool:
        try:
            self.db.add(StripeWebhookEvent(event_id=event_id, event_type=event_type, status="processing"))
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
        result = self.db.execute(
            update(StripeWebhookEvent)
            .where(StripeWebhookEvent.event_id == event_id, StripeWebhookEvent.status == "failed")
            .values(status="processing", error=None)
        )
        self._commit()
        return bool(result.rowcount)

    def _set_status(self, event_id: str, status: str, *, error: Optional[str] = None) -> None:
        values: Dict[str, Any] = {"status": status, "error": error}
        if status == "processed":
            values["processed_at"] = utcnow()
        self.db.execute(
            update(StripeWebhookEvent).where(StripeWebhookEvent.event_id == event_id).values(**values)
        )

    # =========================================================================
    # Invoices
    # =========================================================================

    def _invoice_by_stripe_id(self, stripe_invoice_id: Optional[str]) -> Optional[Invoice]:
        if not stripe_invoice_id:
            return None
        return self.db.scalars(select(Invoice).where(Invoice.stripe_invoice_id == stripe_invoice_id)).first()

    def _mark_invoice_paid(self, stripe_invoice_id: Optional[str], metadata: Dict[str, Any]) -> None:
        invoice = self._invoice_by_stripe_id(stripe_invoice_id)
        if invoice is None:
            logger.warning(f"Paid Stripe invoice {stripe_invoice_id} has no local invoice")
        elif invoice.status != "paid":
            invoice.status = "paid"
            invoice.paid_date = utcnow()
            enrollment = invoice.enrollment
            if enrollment is not None:
                enrollment.payment_status = "paid"
                client = self.db.get(Client, enrollment.client_id)
                if client is not None and client.status == "confirmed":
                    client.status = "enrolled"
            metadata = {**(invoice.metadata_json or {}), **metadata}

        if metadata.get("type") == EVENT_REGISTRATION_TYPE:
            self._confirm_event(metadata)

    def _on_invoice_paid(self, obj: Dict[str, Any]) -> None:
        self._mark_invoice_paid(obj.get("id"), dict(obj.get("metadata") or {}))
        payment_intent = obj.get("payment_intent")
        if isinstance(payment_intent, str):
            self._set_payment_status(payment_intent, "succeeded")

    def _on_invoice_payment_failed(self, obj: Dict[str, Any]) -> None:
        invoice = self._invoice_by_stripe_id(obj.get("id"))
        if invoice is None:
            logger.warning(f"Failed Stripe invoice {obj.get('id')} has no local invoice")
            return
        if invoice.status != "paid":
            invoice.status = "overdue"
            if invoice.enrollment is not None:
                invoice.enrollment.payment_status = "overdue"

    def _on_invoice_sent(self, obj: Dict[str, Any]) -> None:
        invoice = self._invoice_by_stripe_id(obj.get("id"))
        if invoice is not None and invoice.status not in ("paid", "cancelled"):
            invoice.status = "open"

    # =========================================================================
    # Checkout and payment intents
    # =========================================================================

    def _confirm_event(self, metadata: Dict[str, Any], **kwargs) -> None:
        event_id = parse_int(metadata.get("event_id"))
        user_id = parse_int(metadata.get("user_id"))
        if event_id is None or user_id is None:
            logger.warning(f"Event registration payment without event_id/user_id: {metadata}")
            return
        self.events.confirm_registration(event_id, user_id, **kwargs)

    def _on_checkout_completed(self, obj: Dict[str, Any]) -> None:
        metadata = dict(obj.get("metadata") or {})
        if metadata.get("type") == EVENT_REGISTRATION_TYPE:
            payment_intent = obj.get("payment_intent")
            self._confirm_event(
                metadata,
                session_id=obj.get("id"),
                payment_intent_id=payment_intent if isinstance(payment_intent, str) else None,
            )
        elif metadata.get("invoice_id"):
            self._mark_invoice_paid(metadata["invoice_id"], {})
        else:
            logger.info(f"Checkout session {obj.get('id')} has no studio metadata")

    def _payment_row(self, obj: Dict[str, Any]) -> StripePayment:
        row = self.db.scalars(
            select(StripePayment).where(StripePayment.stripe_payment_intent_id == obj.get("id"))
        ).first()
        if row is None:
            metadata = dict(obj.get("metadata") or {})
            amount = obj.get("amount")
            row = StripePayment(
                stripe_payment_intent_id=obj.get("id"),
                user_id=parse_int(metadata.get("user_id")),
                amount=(amount / 100.0) if isinstance(amount, (int, float)) else None,
                currency=obj.get("currency"),
                metadata_json=metadata or None,
            )
            self.db.add(row)
        return row

    def _set_payment_status(self, payment_intent_id: str, status: str) -> None:
        self.db.execute(
            update(StripePayment)
            .where(StripePayment.stripe_payment_intent_id == payment_intent_id)
            .values(status=status, updated_at=utcnow())
        )

    def _on_payment_intent_succeeded(self, obj: Dict[str, Any]) -> None:
        row = self._payment_row(obj)
        row.status = "succeeded"
        row.updated_at = utcnow()
        metadata = dict(obj.get("metadata") or {})
        if metadata.get("payment_type") == "event_registration":
            self._confirm_event(metadata, payment_intent_id=obj.get("id"))

    def _on_payment_intent_failed(self, obj: Dict[str, Any]) -> None:
        row = self._payment_row(obj)
        row.status = "failed"
        row.updated_at = utcnow()
