from datetime import date
from unittest.mock import Mock

import pytest
import stripe

from conftest import create_user
from studio_api.exceptions import PaymentProviderError
from studio_api.models.orm_models import Client, ClientTrainerRelationship, Invoice
from studio_api.services.invoice_service import InvoiceService, invoice_number_prefix
from studio_api.services.stripe_gateway import StripeGateway


@pytest.fixture
def member(db_session):
    c = Client(first_name="Ivy", last_name="Invoice", email="ivy@studio.test", status="confirmed")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.mark.unit
def test_invoice_number_prefix():
    assert invoice_number_prefix(date(2025, 3, 9)) == "PFI25/03/"


@pytest.mark.integration
class TestInvoiceNumbering:
    def test_sequence_restarts_each_month(self, db_session, member, stripe_gateway):
        db_session.add_all(
            [
                Invoice(invoice_number="PFI25/03/001", client_id=member.id, amount=10),
                Invoice(invoice_number="PFI25/03/007", client_id=member.id, amount=10),
                Invoice(invoice_number="PFI25/02/031", client_id=member.id, amount=10),
            ]
        )
        db_session.commit()
        svc = InvoiceService(db_session, gateway=stripe_gateway)

        assert svc.next_invoice_number(date(2025, 3, 20)) == "PFI25/03/008"
        assert svc.next_invoice_number(date(2025, 4, 1)) == "PFI25/04/001"


@pytest.mark.api
class TestInvoiceApi:
    def test_admin_creates_draft(self, api, admin_user, login, member):
        login("admin@studio.test")
        resp = api.post("/api/invoices", json={"client_id": member.id, "amount": 45.5, "description": "May pack"})
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "draft"
        assert body["invoice_number"].startswith(invoice_number_prefix(date.today()))
        assert body["amount"] == 45.5

    def test_send_to_stripe(self, api, admin_user, login, member, stripe_gateway):
        login("admin@studio.test")
        resp = api.post("/api/invoices", json={"client_id": member.id, "amount": 20, "sendToStripe": True})
        assert resp.status_code == 201
        assert resp.json()["status"] == "sent"
        assert resp.json()["stripe_invoice_id"] == "in_test_1"
        assert stripe_gateway.create_invoice.call_args.kwargs["email"] == "ivy@studio.test"

    def test_stripe_failure_keeps_draft(self, api, admin_user, login, member, stripe_gateway):
        stripe_gateway.create_invoice.side_effect = PaymentProviderError("Stripe invoice creation failed")
        login("admin@studio.test")
        resp = api.post("/api/invoices", json={"client_id": member.id, "amount": 20, "send_to_stripe": True})
        assert resp.status_code == 201
        assert resp.json()["status"] == "draft"
        assert resp.json()["stripe_invoice_id"] is None

    def test_amount_must_be_positive(self, api, admin_user, login, member):
        login("admin@studio.test")
        assert api.post("/api/invoices", json={"client_id": member.id, "amount": 0}).status_code == 400

    def test_trainer_only_bills_own_clients(self, api, db_session, trainer_user, login, member):
        login("trainer@studio.test")
        denied = api.post("/api/invoices", json={"client_id": member.id, "amount": 10})
        assert denied.status_code == 403

        db_session.add(ClientTrainerRelationship(client_id=member.id, trainer_id=trainer_user.id, status="active"))
        db_session.commit()
        assert api.post("/api/invoices", json={"client_id": member.id, "amount": 10}).status_code == 201
        assert len(api.get("/api/invoices").json()) == 1

    def test_update_is_admin_only(self, api, db_session, trainer_user, login, member):
        inv = Invoice(invoice_number="PFI25/01/001", client_id=member.id, amount=10)
        db_session.add(inv)
        db_session.commit()
        login("trainer@studio.test")
        assert api.put(f"/api/invoices/{inv.id}", json={"status": "paid"}).status_code == 403


@pytest.mark.api
class TestInvoicePayment:
    @pytest.fixture
    def owned_invoice(self, db_session, client_profile):
        inv = Invoice(
            invoice_number="PFI25/01/002",
            client_id=client_profile.id,
            amount=30,
            status="open",
            stripe_invoice_id="in_owned",
        )
        db_session.add(inv)
        db_session.commit()
        return inv

    def test_client_pays_own_invoice(self, api, login, owned_invoice, stripe_gateway):
        login("client@studio.test")
        resp = api.post("/api/stripe/create-invoice-payment", json={"invoiceId": "in_owned"})
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"url": "https://checkout.stripe.test/cs_test_123"}
        assert stripe_gateway.create_checkout_session.call_args.kwargs["metadata"]["invoice_id"] == "in_owned"

    def test_other_client_is_refused(self, api, db_session, owned_invoice, login):
        create_user(db_session, "other@studio.test", "client")
        login("other@studio.test")
        resp = api.post("/api/stripe/create-invoice-payment", json={"invoice_id": "in_owned"})
        assert resp.status_code == 403

    def test_paid_invoice(self, api, db_session, login, owned_invoice):
        owned_invoice.status = "paid"
        db_session.commit()
        login("client@studio.test")
        resp = api.post("/api/stripe/create-invoice-payment", json={"invoice_id": "in_owned"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invoice is already paid"

    def test_client_lists_own_invoices(self, api, login, owned_invoice):
        login("client@studio.test")
        invoices = api.get("/api/client/invoices").json()
        assert [i["invoice_number"] for i in invoices] == ["PFI25/01/002"]


@pytest.mark.unit
class TestStripeGateway:
    def test_missing_key_is_503(self):
        gateway = StripeGateway(api_key="", webhook_secret="")
        with pytest.raises(PaymentProviderError) as exc:
            gateway.create_checkout_session(name="x", amount=1, metadata={}, success_path="/", cancel_path="/")
        assert exc.value.status_code == 503

    def test_checkout_amount_in_cents(self, mocker):
        create = mocker.patch.object(
            stripe.checkout.Session, "create", return_value=Mock(id="cs_1", url="https://pay.test/cs_1")
        )
        gateway = StripeGateway(api_key="sk_test_x", webhook_secret="")

        result = gateway.create_checkout_session(
            name="Drop-in", amount=12.5, metadata={"a": "b"}, success_path="/ok", cancel_path="/no"
        )

        assert result == {"id": "cs_1", "url": "https://pay.test/cs_1"}
        kwargs = create.call_args.kwargs
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 1250
        assert kwargs["success_url"].endswith("/ok")
        assert kwargs["payment_intent_data"] == {"metadata": {"a": "b"}}

    def test_stripe_error_becomes_502(self, mocker):
        mocker.patch.object(stripe.checkout.Session, "create", side_effect=stripe.StripeError("boom"))
        gateway = StripeGateway(api_key="sk_test_x", webhook_secret="")
        with pytest.raises(PaymentProviderError) as exc:
            gateway.create_checkout_session(name="x", amount=1, metadata={}, success_path="/", cancel_path="/")
        assert exc.value.status_code == 502
