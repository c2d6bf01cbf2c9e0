from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from studio_api.models.orm_models import Attendance, ClassEnrollment, Client, StudioClass
from studio_api.services.email_service import EmailService


def add_client(session, email, last_name="Member", **extra):
    c = Client(first_name="Sam", last_name=last_name, email=email, status="confirmed", **extra)
    session.add(c)
    session.commit()
    return c


CLASS_BODY = {
    "name": "Evening Strength",
    "date": (date.today() + timedelta(days=2)).isoformat(),
    "start_time": "18:00",
    "end_time": "19:00",
    "price": 30,
    "max_capacity": 2,
}


@pytest.mark.api
class TestClassCrud:
    def test_admin_creates_class(self, api, admin_user, login):
        login("admin@studio.test")
        resp = api.post("/api/classes", json=CLASS_BODY)
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["id"]
        assert body["start_time"] == "18:00:00"
        assert body["duration_minutes"] == 60
        assert body["current_enrollment"] == 0

    def test_trainer_becomes_instructor(self, api, trainer_user, login):
        login("trainer@studio.test")
        resp = api.post("/api/classes", json=CLASS_BODY)
        assert resp.status_code == 200
        assert resp.json()["trainer_id"] == trainer_user.id
        assert resp.json()["instructor"]["first_name"] == "Tom"

    def test_client_is_denied(self, api, client_user, login):
        login("client@studio.test")
        resp = api.post("/api/classes", json=CLASS_BODY)
        assert resp.status_code == 403
        assert resp.json() == {"error": "Access denied", "redirect": "/client"}

    def test_anonymous_is_rejected(self, api):
        resp = api.get("/api/classes")
        assert resp.status_code == 401

    def test_end_before_start_is_rejected(self, api, admin_user, login):
        login("admin@studio.test")
        resp = api.post("/api/classes", json={**CLASS_BODY, "start_time": "19:00", "end_time": "18:00"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"

    def test_unknown_class_is_404(self, api, admin_user, login):
        login("admin@studio.test")
        resp = api.get("/api/classes/999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Class not found"}

    def test_capacity_cannot_drop_below_enrollment(self, api, admin_user, login, make_class):
        c = make_class(max_capacity=5, current_enrollment=3)
        login("admin@studio.test")
        resp = api.put(f"/api/classes/{c.id}", json={"max_capacity": 2})
        assert resp.status_code == 400

    def test_list_filters_by_status(self, api, admin_user, login, make_class):
        make_class(name="Open")
        make_class(name="Gone", status="cancelled")
        login("admin@studio.test")
        resp = api.get("/api/classes", params={"status": "cancelled"})
        assert resp.status_code == 200
        assert [c["name"] for c in resp.json()] == ["Gone"]


@pytest.mark.api
class TestClassEnrollment:
    def test_enroll_until_full(self, api, db_session, admin_user, login, make_class):
        c = make_class(max_capacity=1)
        first = add_client(db_session, "one@studio.test")
        second = add_client(db_session, "two@studio.test")
        login("admin@studio.test")

        ok = api.post(f"/api/classes/{c.id}/enrollments", json={"client_id": first.id})
        assert ok.status_code == 200, ok.text
        assert ok.json()["status"] == "enrolled"
        assert ok.json()["payment_status"] == "pending"

        full = api.post(f"/api/classes/{c.id}/enrollments", json={"client_id": second.id})
        assert full.status_code == 400
        assert full.json()["error"] == "Class is at full capacity"

        db_session.expire_all()
        assert db_session.get(StudioClass, c.id).current_enrollment == 1

    def test_double_enrollment(self, api, db_session, admin_user, login, make_class):
        c = make_class()
        member = add_client(db_session, "one@studio.test")
        login("admin@studio.test")
        api.post(f"/api/classes/{c.id}/enrollments", json={"client_id": member.id})
        resp = api.post(f"/api/classes/{c.id}/enrollments", json={"client_id": member.id})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Client is already enrolled in this class"

    def test_cancel_frees_seat_and_reenroll(self, api, db_session, admin_user, login, make_class):
        c = make_class(max_capacity=1)
        member = add_client(db_session, "one@studio.test")
        login("admin@studio.test")
        enrollment = api.post(f"/api/classes/{c.id}/enrollments", json={"client_id": member.id}).json()

        resp = api.put(f"/api/enrollments/{enrollment['id']}", json={"status": "cancelled"})
        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.get(StudioClass, c.id).current_enrollment == 0

        again = api.post(f"/api/classes/{c.id}/enrollments", json={"client_id": member.id})
        assert again.status_code == 200
        assert again.json()["id"] == enrollment["id"]
        count = db_session.scalar(select(func.count()).select_from(ClassEnrollment))
        assert count == 1


@pytest.mark.api
class TestClassAttendance:
    def test_marking_twice_updates_same_row(self, api, db_session, admin_user, login, make_class):
        c = make_class()
        member = add_client(db_session, "one@studio.test")
        login("admin@studio.test")
        day = date.today().isoformat()

        first = api.post(f"/api/classes/{c.id}/attendance", json={"client_id": member.id, "status": "present", "date": day})
        assert first.status_code == 200
        assert first.json()["created"] is True
        assert first.json()["check_in_time"]

        second = api.post(f"/api/classes/{c.id}/attendance", json={"client_id": member.id, "status": "late", "date": day})
        assert second.json()["created"] is False
        assert second.json()["id"] == first.json()["id"]
        assert second.json()["marked_by"] == admin_user.id

        rows = db_session.scalars(select(Attendance)).all()
        assert len(rows) == 1
        assert rows[0].status == "late"

    def test_invalid_status(self, api, db_session, admin_user, login, make_class):
        c = make_class()
        member = add_client(db_session, "one@studio.test")
        login("admin@studio.test")
        resp = api.post(f"/api/classes/{c.id}/attendance", json={"client_id": member.id, "status": "asleep"})
        assert resp.status_code == 400


@pytest.mark.api
def test_class_reminder_counts(api, db_session, admin_user, login, make_class, mocker):
    c = make_class()
    alpha = add_client(db_session, "alpha@studio.test", last_name="Alpha")
    beta = add_client(db_session, "beta@studio.test", last_name="Beta")
    gone = add_client(db_session, "gone@studio.test", last_name="Gone")
    db_session.add_all(
        [
            ClassEnrollment(class_id=c.id, client_id=alpha.id, status="enrolled"),
            ClassEnrollment(class_id=c.id, client_id=beta.id, status="active"),
            ClassEnrollment(class_id=c.id, client_id=gone.id, status="cancelled"),
        ]
    )
    db_session.commit()
    send = mocker.patch.object(EmailService, "send", side_effect=[{"id": "em_1"}, RuntimeError("bounced")])

    login("admin@studio.test")
    resp = api.post(f"/api/classes/{c.id}/reminder", json={"message": "Bring water"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["sent"] == {"email": 1, "whatsapp": 0, "failed": 1}
    assert body["classInfo"]["id"] == c.id
    assert [d["status"] for d in body["details"]] == ["sent", "failed"]
    assert send.call_count == 2


@pytest.mark.api
def test_calendar_feed_scoped_for_trainers(api, db_session, trainer_user, admin_user, login, make_class):
    taught = make_class(name="Trainer Flow", trainer_id=trainer_user.id)
    make_class(name="Admin Flow", trainer_id=admin_user.id)

    login("trainer@studio.test")
    events = api.get("/api/classes/calendar").json()

    assert [e["id"] for e in events] == [taught.id]
    assert events[0]["start"].endswith("T09:00:00")
    assert events[0]["instructor"]["first_name"] == "Tom"

    login("admin@studio.test")
    assert len(api.get("/api/classes/calendar").json()) == 2


@pytest.mark.api
def test_intro_swim_scenario(api, admin_user, client_user, login):
    body = {"name": "Intro Swim", "start_time": "09:00", "end_time": "09:45", "price": 50}

    login("admin@studio.test")
    created = api.post("/api/classes", json=body)
    assert created.status_code == 200, created.text
    assert created.json()["id"]
    assert created.json()["date"] == date.today().isoformat()

    login("client@studio.test")
    assert api.post("/api/classes", json=body).status_code == 403
