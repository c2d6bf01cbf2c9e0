from datetime import date, timedelta

import pytest
from sqlalchemy import select

from studio_api.models.orm_models import Attendance, ClassEnrollment, Client


def add_client(session, email, first_name="Sam"):
    c = Client(first_name=first_name, last_name="Member", email=email, status="confirmed")
    session.add(c)
    session.commit()
    return c


@pytest.mark.api
class TestEnrollmentsApi:
    def test_post_creates_enrollment_and_takes_a_seat(self, api, db_session, admin_user, login, make_class):
        c = make_class(max_capacity=3)
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        resp = api.post("/api/enrollments", json={"class_id": c.id, "client_id": member.id})
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "enrolled"
        assert body["payment_status"] == "pending"
        db_session.expire_all()
        assert db_session.get(type(c), c.id).current_enrollment == 1

    def test_duplicate_enrollment_is_rejected(self, api, db_session, admin_user, login, make_class):
        c = make_class()
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        assert api.post("/api/enrollments", json={"class_id": c.id, "client_id": member.id}).status_code == 201
        resp = api.post("/api/enrollments", json={"class_id": c.id, "client_id": member.id})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Client is already enrolled in this class"}

    def test_list_expands_client_and_class(self, api, db_session, admin_user, login, make_class):
        c = make_class(name="Core")
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        api.post("/api/enrollments", json={"class_id": c.id, "client_id": member.id})
        resp = api.get("/api/enrollments", params={"class_id": c.id})
        assert resp.status_code == 200
        rows = resp.json()
        assert len(rows) == 1
        assert rows[0]["client"]["email"] == "sam@studio.test"
        assert rows[0]["class"]["name"] == "Core"
        assert rows[0]["invoice"] is None

    def test_trainer_lists_only_own_classes(self, api, db_session, trainer_user, login, make_class):
        mine = make_class(name="Mine", trainer_id=trainer_user.id)
        other = make_class(name="Other")
        member = add_client(db_session, "sam@studio.test")
        db_session.add_all(
            [
                ClassEnrollment(class_id=mine.id, client_id=member.id, status="enrolled"),
                ClassEnrollment(class_id=other.id, client_id=member.id, status="enrolled"),
            ]
        )
        db_session.commit()
        login("trainer@studio.test")
        resp = api.get("/api/enrollments")
        assert [r["class"]["name"] for r in resp.json()] == ["Mine"]

    def test_delete_releases_the_seat(self, api, db_session, admin_user, login, make_class):
        c = make_class(max_capacity=1)
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        enrollment_id = api.post("/api/enrollments", json={"class_id": c.id, "client_id": member.id}).json()["id"]
        resp = api.delete(f"/api/enrollments/{enrollment_id}")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Enrollment deleted successfully"}
        db_session.expire_all()
        assert db_session.get(type(c), c.id).current_enrollment == 0
        assert db_session.get(ClassEnrollment, enrollment_id) is None

    def test_client_is_denied(self, api, client_user, login):
        login("client@studio.test")
        assert api.get("/api/enrollments").status_code == 403


@pytest.mark.api
class TestSeatAccounting:
    """current_enrollment follows enrollments through every status change."""

    def _enroll(self, api, class_id, client_id):
        resp = api.post("/api/enrollments", json={"class_id": class_id, "client_id": client_id})
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    def _seats(self, db_session, studio_class):
        db_session.expire_all()
        return db_session.get(type(studio_class), studio_class.id).current_enrollment

    def test_completed_then_cancelled_releases_exactly_one_seat(
        self, api, db_session, admin_user, login, make_class
    ):
        c = make_class(max_capacity=1)
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        enrollment_id = self._enroll(api, c.id, member.id)

        assert api.put(f"/api/enrollments/{enrollment_id}", json={"status": "completed"}).status_code == 200
        assert self._seats(db_session, c) == 1
        assert api.put(f"/api/enrollments/{enrollment_id}", json={"status": "cancelled"}).status_code == 200
        assert self._seats(db_session, c) == 0

        # The freed seat can be taken again
        other = add_client(db_session, "kim@studio.test", first_name="Kim")
        self._enroll(api, c.id, other.id)
        assert self._seats(db_session, c) == 1

    def test_completed_back_to_enrolled_keeps_one_seat(self, api, db_session, admin_user, login, make_class):
        c = make_class(max_capacity=2)
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        enrollment_id = self._enroll(api, c.id, member.id)
        api.put(f"/api/enrollments/{enrollment_id}", json={"status": "completed"})
        api.put(f"/api/enrollments/{enrollment_id}", json={"status": "enrolled"})
        assert self._seats(db_session, c) == 1

    def test_delete_after_completed_releases_seat(self, api, db_session, admin_user, login, make_class):
        c = make_class(max_capacity=1)
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        enrollment_id = self._enroll(api, c.id, member.id)
        api.put(f"/api/enrollments/{enrollment_id}", json={"status": "completed"})
        api.delete(f"/api/enrollments/{enrollment_id}")
        assert self._seats(db_session, c) == 0

    def test_delete_after_cancel_does_not_release_twice(self, api, db_session, admin_user, login, make_class):
        c = make_class(max_capacity=2)
        first = add_client(db_session, "sam@studio.test")
        second = add_client(db_session, "kim@studio.test", first_name="Kim")
        login("admin@studio.test")
        cancelled_id = self._enroll(api, c.id, first.id)
        self._enroll(api, c.id, second.id)
        api.put(f"/api/enrollments/{cancelled_id}", json={"status": "cancelled"})
        api.delete(f"/api/enrollments/{cancelled_id}")
        assert self._seats(db_session, c) == 1

    def test_reactivating_cancelled_enrollment_respects_capacity(
        self, api, db_session, admin_user, login, make_class
    ):
        c = make_class(max_capacity=1)
        first = add_client(db_session, "sam@studio.test")
        second = add_client(db_session, "kim@studio.test", first_name="Kim")
        login("admin@studio.test")
        cancelled_id = self._enroll(api, c.id, first.id)
        api.put(f"/api/enrollments/{cancelled_id}", json={"status": "cancelled"})
        self._enroll(api, c.id, second.id)
        resp = api.put(f"/api/enrollments/{cancelled_id}", json={"status": "enrolled"})
        assert resp.status_code == 400
        assert self._seats(db_session, c) == 1


@pytest.mark.api
class TestAttendanceApi:
    def test_first_mark_is_created(self, api, db_session, admin_user, login, make_class):
        c = make_class()
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        resp = api.post(
            "/api/attendance",
            json={"class_id": c.id, "client_id": member.id, "date": date.today().isoformat(), "status": "late"},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "late"
        assert body["created"] is True
        assert body["marked_by"] == admin_user.id
        assert body["check_in_time"] is not None

    def test_second_mark_updates_same_row(self, api, db_session, admin_user, login, make_class):
        c = make_class()
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        body = {"class_id": c.id, "client_id": member.id, "date": date.today().isoformat()}
        first = api.post("/api/attendance", json={**body, "status": "present"})
        second = api.post("/api/attendance", json={**body, "status": "absent"})
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        assert second.json()["status"] == "absent"
        assert len(db_session.scalars(select(Attendance)).all()) == 1

    def test_list_filters_by_date(self, api, db_session, admin_user, login, make_class):
        c = make_class(name="Core")
        member = add_client(db_session, "sam@studio.test")
        yesterday = date.today() - timedelta(days=1)
        db_session.add_all(
            [
                Attendance(class_id=c.id, client_id=member.id, attendance_date=yesterday, status="present"),
                Attendance(class_id=c.id, client_id=member.id, attendance_date=date.today(), status="absent"),
            ]
        )
        db_session.commit()
        login("admin@studio.test")
        resp = api.get("/api/attendance", params={"date": yesterday.isoformat()})
        assert resp.status_code == 200
        rows = resp.json()
        assert [r["status"] for r in rows] == ["present"]
        assert rows[0]["class"]["name"] == "Core"
        assert rows[0]["client"]["email"] == "sam@studio.test"

    def test_unknown_class_is_404(self, api, db_session, admin_user, login):
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        resp = api.post(
            "/api/attendance",
            json={"class_id": 999, "client_id": member.id, "date": date.today().isoformat()},
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Class not found"}

    def test_missing_date_is_validation_error(self, api, db_session, admin_user, login, make_class):
        c = make_class()
        member = add_client(db_session, "sam@studio.test")
        login("admin@studio.test")
        resp = api.post("/api/attendance", json={"class_id": c.id, "client_id": member.id})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"
