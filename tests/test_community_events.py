from datetime import date, timedelta

import pytest
from sqlalchemy import select

from studio_api.models.orm_models import ClientPoints, CommunityEvent, CommunityEventParticipant


@pytest.fixture
def make_event(db_session):
    def _make(**overrides):
        values = dict(
            title="Park Yoga",
            event_date=date.today() + timedelta(days=3),
            price=0,
            max_participants=10,
            current_participants=0,
            points_reward=25,
            status="active",
            is_public=True,
        )
        values.update(overrides)
        e = CommunityEvent(**values)
        db_session.add(e)
        db_session.commit()
        return e

    return _make


@pytest.mark.api
class TestPublicListing:
    def test_only_active_public_upcoming(self, api, make_event):
        make_event(title="Visible")
        make_event(title="Private", is_public=False)
        make_event(title="Cancelled", status="cancelled")
        make_event(title="Past", event_date=date.today() - timedelta(days=1))

        resp = api.get("/api/community-events/public")

        assert resp.status_code == 200
        assert [e["title"] for e in resp.json()["events"]] == ["Visible"]

    def test_staff_listing_requires_login(self, api):
        assert api.get("/api/community-events").status_code == 401


@pytest.mark.api
class TestFreeRegistration:
    def test_register_awards_points(self, api, db_session, client_user, login, make_event):
        e = make_event()
        login("client@studio.test")

        resp = api.post(f"/api/community-events/{e.id}/register")

        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "confirmed"
        assert body["current_participants"] == 1
        assert body["points_awarded"] == 25
        assert body["registration"]["payment_status"] == "free"
        ledger = db_session.scalars(select(ClientPoints).where(ClientPoints.user_id == client_user.id)).one()
        assert ledger.points_balance == 25

    def test_second_registration_rejected(self, api, client_user, login, make_event):
        e = make_event()
        login("client@studio.test")
        api.post(f"/api/community-events/{e.id}/register")
        resp = api.post(f"/api/community-events/{e.id}/register")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Already registered for this event"

    def test_full_event(self, api, client_user, login, make_event):
        e = make_event(max_participants=2, current_participants=2)
        login("client@studio.test")
        resp = api.post(f"/api/community-events/{e.id}/register")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Event is full"

    def test_inactive_event(self, api, client_user, login, make_event):
        e = make_event(status="cancelled")
        login("client@studio.test")
        assert api.post(f"/api/community-events/{e.id}/register").status_code == 404

    def test_cancel_releases_spot(self, api, db_session, client_user, login, make_event):
        e = make_event()
        login("client@studio.test")
        api.post(f"/api/community-events/{e.id}/register")

        resp = api.delete(f"/api/community-events/{e.id}/register")

        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.get(CommunityEvent, e.id).current_participants == 0
        assert db_session.scalars(select(CommunityEventParticipant)).first() is None

    def test_registrations_list(self, api, client_user, login, make_event):
        e = make_event()
        login("client@studio.test")
        api.post(f"/api/community-events/{e.id}/register")
        regs = api.get("/api/community-events/registrations").json()["registrations"]
        assert [r["event"]["id"] for r in regs] == [e.id]


@pytest.mark.api
def test_paid_registration_returns_checkout(api, db_session, client_user, login, make_event, stripe_gateway):
    e = make_event(price=20)
    login("client@studio.test")

    resp = api.post(f"/api/community-events/{e.id}/register")

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["checkout_url"] == "https://checkout.stripe.test/cs_test_123"
    assert body["status"] == "pending"
    assert body["registration"]["status"] == "pending"
    kwargs = stripe_gateway.create_checkout_session.call_args.kwargs
    assert kwargs["metadata"]["type"] == "community_event_registration"
    assert kwargs["metadata"]["event_id"] == str(e.id)
    db_session.expire_all()
    # Seat is only taken once the webhook confirms payment
    assert db_session.get(CommunityEvent, e.id).current_participants == 0


@pytest.mark.api
def test_admin_creates_event(api, admin_user, login):
    login("admin@studio.test")
    resp = api.post(
        "/api/community-events",
        json={"title": "Beach Bootcamp", "eventDate": (date.today() + timedelta(days=9)).isoformat(), "price": 0},
    )
    assert resp.status_code == 201, resp.text
    event = resp.json()["event"]
    assert event["created_by"] == admin_user.id
    assert event["status"] == "active"
