"""
Invoice Service - SQLAlchemy ORM Implementation

Local invoices numbered ``PFI{yy}/{MM}/{seq:03d}``, optionally mirrored to a
finalized Stripe invoice, plus the checkout flow clients use to pay them.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from studio_api.exceptions import NotFound, PaymentProviderError, PermissionDenied, ValidationFailed
from studio_api.models.orm_models import ClassEnrollment, Client, Invoice
from studio_api.schemas import InvoiceCreate, InvoiceUpdate
from studio_api.services.base import BaseService
from studio_api.services.client_service import ClientService
from studio_api.services.stripe_gateway import StripeGateway
from studio_api.utils import iso, money, utcnow

logger = logging.getLogger(__name__)

NUMBER_ATTEMPTS = 5


def invoice_number_prefix(on: date) -> str:
    return f"PFI{on.strftime('%y')}/{on.strftime('%m')}/"


class InvoiceService(BaseService):
    """Service for invoices."""

    def __init__(self, db: Session, gateway: Optional[StripeGateway] = None):
        super().__init__(db)
        self.gateway = gateway or StripeGateway()
        self.clients = ClientService(db)

    @staticmethod
    def invoice_to_dict(inv: Invoice) -> Dict[str, Any]:
        c = inv.client
        return {
            "id": inv.id,
            "invoice_number": inv.invoice_number,
            "client_id": inv.client_id,
            "enrollment_id": inv.enrollment_id,
            "stripe_invoice_id": inv.stripe_invoice_id,
            "stripe_customer_id": inv.stripe_customer_id,
            "amount": money(inv.amount),
            "currency": inv.currency,
            "description": inv.description,
            "status": inv.status,
            "due_date": iso(inv.due_date),
            "paid_date": iso(inv.paid_date),
            "metadata": inv.metadata_json or {},
            "created_at": iso(inv.created_at),
            "client": (
                {"id": c.id, "first_name": c.first_name, "last_name": c.last_name, "email": c.email}
                if c is not None
                else None
            ),
        }

    def get_invoice_model(self, invoice_id: int) -> Invoice:
        inv = self.db.get(Invoice, invoice_id)
        if inv is None:
            raise NotFound("Invoice not found")
        return inv

    def next_invoice_number(self, on: Optional[date] = None) -> str:
        """Next number in the month's sequence."""
        prefix = invoice_number_prefix(on or date.today())
        numbers = self.db.scalars(
            select(Invoice.invoice_number).where(Invoice.invoice_number.like(f"{prefix}%"))
        ).all()
        seq = 0
        for number in numbers:
            try:
                seq = max(seq, int(number[len(prefix):]))
            except ValueError:
                continue
        return f"{prefix}{seq + 1:03d}"

    # =========================================================================
    # Queries
    # =========================================================================

    def list_invoices(
        self,
        *,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        trainer_user_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(Invoice).options(joinedload(Invoice.client))
        if status:
            stmt = stmt.where(Invoice.status == status)
        if client_id:
            stmt = stmt.where(Invoice.client_id == client_id)
        if trainer_user_id:
            owned = self.clients.scope_to_trainer(select(Client.id), trainer_user_id)
            stmt = stmt.where(Invoice.client_id.in_(owned))
        stmt = stmt.order_by(Invoice.created_at.desc(), Invoice.id.desc())
        invoices = self.db.scalars(stmt).all()
        logger.debug(f"Found {len(invoices)} invoices")
        return [self.invoice_to_dict(i) for i in invoices]

    def client_invoices(self, user_id: int) -> List[Dict[str, Any]]:
        client = self.clients.get_client_by_user(user_id)
        if client is None:
            return []
        return self.list_invoices(client_id=client.id)

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_invoice(
        self, payload: InvoiceCreate, *, trainer_user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        client = self.db.get(Client, payload.client_id)
        if client is None:
            raise NotFound("Client not found")
        if trainer_user_id and not self.clients.trainer_owns_client(trainer_user_id, client.id):
            raise PermissionDenied("Access denied. Client is not assigned to you.")
        if payload.enrollment_id is not None:
            enrollment = self.db.get(ClassEnrollment, payload.enrollment_id)
            if enrollment is None:
                raise NotFound("Enrollment not found")
            if enrollment.client_id != client.id:
                raise ValidationFailed("Enrollment does not belong to this client")

        metadata = {str(k): v for k, v in (payload.metadata or {}).items()}
        for attempt in range(NUMBER_ATTEMPTS):
            invoice = Invoice(
                invoice_number=self.next_invoice_number(),
                client_id=client.id,
                enrollment_id=payload.enrollment_id,
                amount=payload.amount,
                currency=payload.currency.lower(),
                description=payload.description,
                status="draft",
                due_date=payload.due_date,
                metadata_json=metadata or None,
            )
            try:
                self.db.add(invoice)
                self.db.commit()
                break
            except IntegrityError:
                # Another request took the same number
                self.db.rollback()
                if attempt == NUMBER_ATTEMPTS - 1:
                    raise
            except Exception as e:
                logger.error(f"Error creating invoice for client {client.id}: {e}")
                self.db.rollback()
                raise
        self.db.refresh(invoice)

        if payload.send_to_stripe:
            self._push_to_stripe(invoice, client)
        logger.info(f"Invoice {invoice.invoice_number} created for client {client.id}")
        return self.invoice_to_dict(invoice)

    def _push_to_stripe(self, invoice: Invoice, client: Client) -> None:
        stripe_metadata = {"local_invoice_number": invoice.invoice_number, "local_invoice_id": str(invoice.id)}
        for key, value in (invoice.metadata_json or {}).items():
            if value is not None:
                stripe_metadata[key] = str(value)
        try:
            result = self.gateway.create_invoice(
                email=client.email,
                name=f"{client.first_name} {client.last_name}".strip(),
                amount=invoice.amount,
                currency=invoice.currency,
                description=invoice.description,
                metadata=stripe_metadata,
            )
        except PaymentProviderError as e:
            # The local invoice stays as a draft
            logger.warning(f"Invoice {invoice.invoice_number} not sent to Stripe: {e}")
            return
        invoice.stripe_invoice_id = result["invoice_id"]
        invoice.stripe_customer_id = result["customer_id"]
        invoice.status = "sent"
        self._commit()

    def update_invoice(self, invoice_id: int, payload: InvoiceUpdate) -> Dict[str, Any]:
        inv = self.get_invoice_model(invoice_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        for key, value in changes.items():
            setattr(inv, key, value)
        if changes.get("status") == "paid" and inv.paid_date is None:
            inv.paid_date = utcnow()
        try:
            self.db.commit()
        except Exception as e:
            logger.error(f"Error updating invoice {invoice_id}: {e}")
            self.db.rollback()
            raise
        return self.invoice_to_dict(inv)

    def create_payment_session(self, user_id: int, stripe_invoice_id: str) -> Dict[str, Any]:
        """Checkout session for a client paying one of their Stripe invoices."""
        inv = self.db.scalars(select(Invoice).where(Invoice.stripe_invoice_id == stripe_invoice_id)).first()
        if inv is None:
            raise NotFound("Invoice not found")
        client = self.clients.get_client_by_user(user_id)
        if client is None or inv.client_id != client.id:
            raise PermissionDenied("Unauthorized access to invoice")
        if inv.status == "paid":
            raise ValidationFailed("Invoice is already paid")

        metadata = {
            "invoice_id": stripe_invoice_id,
            "user_id": str(user_id),
            "client_id": str(client.id),
        }
        event_id = (inv.metadata_json or {}).get("event_id")
        if event_id is not None:
            metadata["event_id"] = str(event_id)
        session = self.gateway.create_checkout_session(
            name=inv.description or f"Invoice {inv.invoice_number}",
            amount=inv.amount,
            currency=inv.currency,
            metadata=metadata,
            customer_email=client.email,
            success_path="/client/community-events?payment=success&session_id={CHECKOUT_SESSION_ID}",
            cancel_path="/client/community-events?payment=cancelled",
        )
        return {"url": session["url"]}
