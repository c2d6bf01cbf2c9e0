from datetime import time

import pytest
from sqlalchemy import func, select

from conftest import create_user
from studio_api.models.orm_models import Client, ClientTrainerRelationship, TrainerAvailability


@pytest.fixture
def coached_client(db_session, trainer_user):
    c = Client(first_name="Cora", last_name="Coached", email="cora@studio.test", trainer_id=trainer_user.id)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def other_client(db_session):
    c = Client(first_name="Otto", last_name="Other", email="otto@studio.test")
    db_session.add(c)
    db_session.commit()
    return c


def progress_body(client_id, sets):
    return {"exercise_id": 12, "training_day_id": "day-1", "client_id": client_id, "set_progress": sets}


@pytest.mark.api
class TestSetProgress:
    def test_trainer_saves_and_reads(self, api, trainer_user, login, coached_client):
        login("trainer@studio.test")
        saved = api.post(
            "/api/set-progress",
            json=progress_body(coached_client.id, {"0": {"weight": 40, "reps": 10}, "1": {"weight": 42.5, "reps": 8}}),
        )
        assert saved.status_code == 200, saved.text
        assert saved.json() == {"success": True, "saved": 2}

        resp = api.get(
            "/api/set-progress",
            params={"exercise_id": "12", "training_day_id": "day-1", "client_id": coached_client.id},
        )
        progress = resp.json()["set_progress"]
        assert set(progress) == {"0", "1"}
        assert progress["1"]["weight"] == 42.5
        assert progress["1"]["reps"] == 8

    def test_resave_overwrites(self, api, trainer_user, login, coached_client):
        login("trainer@studio.test")
        api.post("/api/set-progress", json=progress_body(coached_client.id, {"0": {"weight": 40, "reps": 10}}))
        api.post("/api/set-progress", json=progress_body(coached_client.id, {"0": {"weight": 45, "reps": 6}}))
        progress = api.get(
            "/api/set-progress",
            params={"exercise_id": "12", "training_day_id": "day-1", "client_id": coached_client.id},
        ).json()["set_progress"]
        assert progress == {"0": {"weight": 45.0, "reps": 6, "updated_at": progress["0"]["updated_at"]}}

    def test_trainer_cannot_touch_unassigned_client(self, api, trainer_user, login, other_client):
        login("trainer@studio.test")
        resp = api.post("/api/set-progress", json=progress_body(other_client.id, {"0": {"reps": 5}}))
        assert resp.status_code == 403
        assert resp.json()["error"] == "Access denied. Client is not assigned to you."

    def test_relationship_grants_access(self, api, db_session, trainer_user, login, other_client):
        db_session.add(ClientTrainerRelationship(client_id=other_client.id, trainer_id=trainer_user.id, status="active"))
        db_session.commit()
        login("trainer@studio.test")
        resp = api.post("/api/set-progress", json=progress_body(other_client.id, {"0": {"reps": 5}}))
        assert resp.status_code == 200

    def test_client_reads_only_self(self, api, client_user, client_profile, login, other_client):
        login("client@studio.test")
        params = {"exercise_id": "1", "training_day_id": "d", "client_id": other_client.id}
        assert api.get("/api/set-progress", params=params).status_code == 403
        params["client_id"] = client_profile.id
        assert api.get("/api/set-progress", params=params).status_code == 200

    def test_missing_params(self, api, admin_user, login):
        login("admin@studio.test")
        assert api.get("/api/set-progress", params={"exercise_id": "1"}).status_code == 400

    def test_negative_set_index(self, api, admin_user, login, other_client):
        login("admin@studio.test")
        resp = api.post("/api/set-progress", json=progress_body(other_client.id, {"-1": {"reps": 5}}))
        assert resp.status_code == 400


@pytest.mark.api
class TestTrainingInstructions:
    def test_trainer_writes_client_reads(self, api, db_session, trainer_user, login, coached_client):
        user = create_user(db_session, "cora@studio.test", "client")
        coached_client.user_id = user.id
        db_session.commit()

        login("trainer@studio.test")
        created = api.post(
            "/api/training-instructions",
            json={"client_id": coached_client.id, "title": "Warm-up", "content": "10 min bike"},
        )
        assert created.status_code == 201, created.text

        login("cora@studio.test")
        rows = api.get("/api/training-instructions").json()
        assert [r["title"] for r in rows] == ["Warm-up"]

        resp = api.delete(f"/api/training-instructions/{created.json()['id']}")
        assert resp.status_code == 403

    def test_staff_must_name_client(self, api, trainer_user, login):
        login("trainer@studio.test")
        assert api.get("/api/training-instructions").status_code == 400

    def test_client_cannot_write(self, api, client_user, login, other_client):
        login("client@studio.test")
        resp = api.post(
            "/api/training-instructions", json={"client_id": other_client.id, "title": "x", "content": "y"}
        )
        assert resp.status_code == 403


@pytest.mark.api
class TestTrainerAvailability:
    def test_save_is_upsert(self, api, db_session, trainer_user, login):
        login("trainer@studio.test")
        slot = {"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"}
        first = api.post("/api/trainer-availability", json=slot)
        second = api.post("/api/trainer-availability", json={**slot, "is_available": False, "notes": "holiday"})
        assert first.status_code == 200, first.text
        assert second.json()["id"] == first.json()["id"]
        assert second.json()["is_available"] is False
        assert db_session.scalar(select(func.count()).select_from(TrainerAvailability)) == 1

    def test_trainer_lists_own_slots(self, api, db_session, trainer_user, admin_user, login):
        db_session.add_all(
            [
                TrainerAvailability(trainer_id=trainer_user.id, day_of_week=2, start_time=time(8), end_time=time(10)),
                TrainerAvailability(trainer_id=admin_user.id, day_of_week=2, start_time=time(8), end_time=time(10)),
            ]
        )
        db_session.commit()

        login("trainer@studio.test")
        mine = api.get("/api/trainer-availability").json()
        assert {s["trainer_id"] for s in mine} == {trainer_user.id}

        login("admin@studio.test")
        everyone = api.get("/api/trainer-availability", params={"start_time": "07:30"}).json()
        assert len(everyone) == 2
        assert everyone[0]["trainer"]["email"]

    def test_bad_time_filter(self, api, admin_user, login):
        login("admin@studio.test")
        resp = api.get("/api/trainer-availability", params={"start_time": "9am"})
        assert resp.status_code == 400

    def test_end_before_start(self, api, trainer_user, login):
        login("trainer@studio.test")
        resp = api.post("/api/trainer-availability", json={"day_of_week": 1, "start_time": "12:00", "end_time": "09:00"})
        assert resp.status_code == 400
