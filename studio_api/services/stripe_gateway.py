"""
Thin wrapper over the Stripe SDK.

One gateway per request; the API key is read from STRIPE_SECRET_KEY when the
gateway is built. Stripe failures surface as PaymentProviderError (502).
"""

import logging
import os
from typing import Any, Dict, List, Optional

import stripe

from studio_api.exceptions import PaymentProviderError

logger = logging.getLogger(__name__)


def _cents(amount: Any) -> int:
    return int(round(float(amount) * 100))


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = (api_key if api_key is not None else os.getenv("STRIPE_SECRET_KEY", "")).strip()
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else os.getenv("STRIPE_WEBHOOK_SECRET", "")
        ).strip()
        self.currency = (os.getenv("STRIPE_CURRENCY") or "usd").strip().lower()
        self.site_url = (os.getenv("SITE_URL") or "http://localhost:3000").rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> None:
        if not self.api_key:
            raise PaymentProviderError("Stripe not configured", status_code=503)
        stripe.api_key = self.api_key

    # ========== Webhooks ==========

    def construct_event(self, payload: bytes, signature: str):
        """Verify the Stripe-Signature header. Raises ValueError or SignatureVerificationError."""
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)

    # ========== Invoices ==========

    def create_invoice(
        self,
        *,
        email: str,
        name: str,
        amount: Any,
        currency: Optional[str],
        description: Optional[str],
        metadata: Dict[str, str],
        due_days: int = 30,
    ) -> Dict[str, Any]:
        """Create (or reuse) the customer, a one-line invoice, finalize and send it."""
        self._require_key()
        try:
            existing = stripe.Customer.list(email=email, limit=1)
            if existing.data:
                customer = existing.data[0]
            else:
                customer = stripe.Customer.create(email=email, name=name, metadata=metadata)
            invoice = stripe.Invoice.create(
                customer=customer.id,
                collection_method="send_invoice",
                days_until_due=due_days,
                description=description or None,
                metadata=metadata,
            )
            stripe.InvoiceItem.create(
                customer=customer.id,
                invoice=invoice.id,
                amount=_cents(amount),
                currency=(currency or self.currency).lower(),
                description=description or "Studio invoice",
            )
            finalized = stripe.Invoice.finalize_invoice(invoice.id)
            stripe.Invoice.send_invoice(invoice.id)
        except stripe.StripeError as e:
            logger.error(f"Stripe invoice creation failed for {email}: {e}")
            raise PaymentProviderError(f"Stripe invoice creation failed: {e}")
        return {
            "customer_id": customer.id,
            "invoice_id": finalized.id,
            "hosted_invoice_url": getattr(finalized, "hosted_invoice_url", None),
            "status": finalized.status,
        }

    # ========== Checkout ==========

    def create_checkout_session(
        self,
        *,
        name: str,
        amount: Any,
        metadata: Dict[str, str],
        success_path: str,
        cancel_path: str,
        customer_email: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_key()
        line_items: List[Dict[str, Any]] = [
            {
                "price_data": {
                    "currency": (currency or self.currency).lower(),
                    "product_data": {"name": name},
                    "unit_amount": _cents(amount),
                },
                "quantity": 1,
            }
        ]
        kwargs: Dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "success_url": f"{self.site_url}{success_path}",
            "cancel_url": f"{self.site_url}{cancel_path}",
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        if customer_email:
            kwargs["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(**kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed: {e}")
            raise PaymentProviderError(f"Stripe checkout creation failed: {e}")
        return {"id": session.id, "url": session.url}
