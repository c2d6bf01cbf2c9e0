from datetime import date, timedelta

import pytest
from sqlalchemy import select

from conftest import create_user, stripe_event, stripe_signature
from studio_api.models.orm_models import (
    ClassEnrollment,
    Client,
    ClientPoints,
    CommunityEvent,
    CommunityEventParticipant,
    Invoice,
    StripePayment,
    StripeWebhookEvent,
)
from studio_api.services.points_service import PointsService


@pytest.fixture
def open_invoice(db_session, make_class):
    c = make_class()
    client = Client(first_name="Paula", last_name="Payer", email="payer@studio.test", status="confirmed")
    db_session.add(client)
    db_session.flush()
    enrollment = ClassEnrollment(class_id=c.id, client_id=client.id, status="enrolled", payment_status="pending")
    db_session.add(enrollment)
    db_session.flush()
    invoice = Invoice(
        invoice_number="PFI25/01/001",
        client_id=client.id,
        enrollment_id=enrollment.id,
        stripe_invoice_id="in_paid_1",
        amount=25,
        status="open",
    )
    db_session.add(invoice)
    db_session.commit()
    return invoice


@pytest.mark.api
class TestWebhookVerification:
    def test_bad_signature(self, post_webhook):
        resp = post_webhook("evt_1", "invoice.paid", {"id": "in_x"}, signature="t=1,v1=deadbeef")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid signature"}

    def test_signature_from_another_secret(self, post_webhook):
        payload = stripe_event("evt_1", "invoice.paid", {"id": "in_x"})
        resp = post_webhook("evt_1", "invoice.paid", {"id": "in_x"}, signature=stripe_signature(payload, "whsec_other"))
        assert resp.status_code == 400

    def test_missing_signature(self, api):
        resp = api.post("/api/stripe/webhook", content=b"{}")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing Stripe-Signature header"

    def test_unhandled_type_is_acknowledged(self, post_webhook, db_session):
        resp = post_webhook("evt_misc", "customer.created", {"id": "cus_1"})
        assert resp.status_code == 200
        assert resp.json() == {"received": True}
        row = db_session.scalars(select(StripeWebhookEvent)).one()
        assert row.status == "processed"


@pytest.mark.api
class TestInvoiceEvents:
    def test_invoice_paid_updates_invoice_enrollment_and_client(self, post_webhook, db_session, open_invoice):
        resp = post_webhook("evt_paid", "invoice.paid", {"id": "in_paid_1", "metadata": {}})
        assert resp.status_code == 200, resp.text

        db_session.expire_all()
        invoice = db_session.get(Invoice, open_invoice.id)
        assert invoice.status == "paid"
        assert invoice.paid_date is not None
        assert invoice.enrollment.payment_status == "paid"
        assert db_session.get(Client, invoice.client_id).status == "enrolled"

    def test_duplicate_delivery_has_no_side_effects(self, post_webhook, db_session, open_invoice):
        post_webhook("evt_paid", "invoice.paid", {"id": "in_paid_1"})
        resp = post_webhook("evt_paid", "invoice.paid", {"id": "in_paid_1"})

        assert resp.status_code == 200
        assert resp.json() == {"received": True, "duplicate": True}
        assert len(db_session.scalars(select(StripeWebhookEvent)).all()) == 1

    def test_payment_failed_marks_overdue(self, post_webhook, db_session, open_invoice):
        post_webhook("evt_fail", "invoice.payment_failed", {"id": "in_paid_1"})
        db_session.expire_all()
        invoice = db_session.get(Invoice, open_invoice.id)
        assert invoice.status == "overdue"
        assert invoice.enrollment.payment_status == "overdue"

    def test_paid_invoice_is_not_reopened(self, post_webhook, db_session, open_invoice):
        post_webhook("evt_paid", "invoice.paid", {"id": "in_paid_1"})
        post_webhook("evt_sent", "invoice.sent", {"id": "in_paid_1"})
        db_session.expire_all()
        assert db_session.get(Invoice, open_invoice.id).status == "paid"

    def test_unknown_invoice_is_logged_not_failed(self, post_webhook):
        resp = post_webhook("evt_ghost", "invoice.paid", {"id": "in_ghost"})
        assert resp.status_code == 200


@pytest.mark.api
class TestEventPayments:
    @pytest.fixture
    def paid_event(self, db_session):
        e = CommunityEvent(
            title="Sunrise Run",
            event_date=date.today() + timedelta(days=5),
            price=15,
            max_participants=1,
            current_participants=1,
            points_reward=40,
            status="active",
        )
        db_session.add(e)
        db_session.commit()
        return e

    def test_checkout_completed_confirms_registration(self, post_webhook, db_session, paid_event):
        buyer = create_user(db_session, "buyer@studio.test", "client")
        db_session.add(CommunityEventParticipant(event_id=paid_event.id, user_id=buyer.id, status="pending"))
        db_session.commit()
        obj = {
            "id": "cs_test_9",
            "payment_intent": "pi_9",
            "metadata": {
                "type": "community_event_registration",
                "event_id": str(paid_event.id),
                "user_id": str(buyer.id),
            },
        }

        resp = post_webhook("evt_cs", "checkout.session.completed", obj)
        assert resp.status_code == 200, resp.text

        db_session.expire_all()
        participant = db_session.scalars(select(CommunityEventParticipant)).one()
        assert participant.status == "registered"
        assert participant.payment_status == "paid"
        assert participant.stripe_payment_intent_id == "pi_9"
        # Paid spots are granted even when the event filled up meanwhile
        assert db_session.get(CommunityEvent, paid_event.id).current_participants == 2
        ledger = db_session.scalars(select(ClientPoints).where(ClientPoints.user_id == buyer.id)).one()
        assert ledger.points_balance == 40

    def test_payment_intent_succeeded_records_payment(self, post_webhook, db_session, client_user):
        obj = {"id": "pi_77", "amount": 1500, "currency": "usd", "metadata": {"user_id": str(client_user.id)}}
        post_webhook("evt_pi", "payment_intent.succeeded", obj)
        row = db_session.scalars(select(StripePayment)).one()
        assert row.status == "succeeded"
        assert float(row.amount) == 15.0
        assert row.user_id == client_user.id


@pytest.mark.api
class TestFailedDelivery:
    @pytest.fixture
    def event_invoice(self, db_session):
        buyer = create_user(db_session, "runner@studio.test", "client")
        event = CommunityEvent(
            title="Harbour 10k",
            event_date=date.today() + timedelta(days=9),
            price=20,
            max_participants=10,
            current_participants=0,
            points_reward=25,
            status="active",
        )
        client = Client(user_id=buyer.id, first_name="Rita", last_name="Runner", email=buyer.email, status="confirmed")
        db_session.add_all([event, client])
        db_session.flush()
        db_session.add(CommunityEventParticipant(event_id=event.id, user_id=buyer.id, status="pending"))
        invoice = Invoice(
            invoice_number="PFI25/02/001",
            client_id=client.id,
            stripe_invoice_id="in_evt_1",
            amount=20,
            status="open",
            metadata_json={
                "type": "community_event_registration",
                "event_id": str(event.id),
                "user_id": str(buyer.id),
            },
        )
        db_session.add(invoice)
        db_session.commit()
        return {"invoice": invoice, "event": event, "buyer": buyer}

    def test_failure_rolls_back_and_redelivery_succeeds(self, post_webhook, db_session, mocker, event_invoice):
        award = mocker.patch.object(PointsService, "add_points", side_effect=RuntimeError("ledger unavailable"))

        resp = post_webhook("evt_evt_paid", "invoice.paid", {"id": "in_evt_1"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Webhook processing failed"}
        assert award.call_count == 1
        db_session.expire_all()
        # Nothing from the failed attempt is kept
        assert db_session.get(Invoice, event_invoice["invoice"].id).status == "open"
        assert db_session.get(Invoice, event_invoice["invoice"].id).paid_date is None
        assert db_session.scalars(select(CommunityEventParticipant)).one().status == "pending"
        assert db_session.get(CommunityEvent, event_invoice["event"].id).current_participants == 0
        row = db_session.scalars(select(StripeWebhookEvent)).one()
        assert row.status == "failed"
        assert "ledger unavailable" in row.error

        mocker.stopall()
        resp = post_webhook("evt_evt_paid", "invoice.paid", {"id": "in_evt_1"})

        assert resp.status_code == 200, resp.text
        assert resp.json() == {"received": True}
        db_session.expire_all()
        assert db_session.get(Invoice, event_invoice["invoice"].id).status == "paid"
        assert db_session.scalars(select(CommunityEventParticipant)).one().status == "registered"
        assert db_session.get(CommunityEvent, event_invoice["event"].id).current_participants == 1
        row = db_session.scalars(select(StripeWebhookEvent)).one()
        assert (row.status, row.error) == ("processed", None)
        buyer_id = event_invoice["buyer"].id
        assert db_session.scalars(select(ClientPoints).where(ClientPoints.user_id == buyer_id)).one().points_balance == 25

    def test_processed_event_is_not_replayed_after_failure_elsewhere(self, post_webhook, db_session, mocker, event_invoice):
        post_webhook("evt_ok", "invoice.paid", {"id": "in_evt_1"})
        award = mocker.patch.object(PointsService, "add_points", side_effect=RuntimeError("boom"))

        resp = post_webhook("evt_ok", "invoice.paid", {"id": "in_evt_1"})

        assert resp.json() == {"received": True, "duplicate": True}
        assert award.call_count == 0
