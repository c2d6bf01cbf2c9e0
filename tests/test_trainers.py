import pytest
from sqlalchemy import select

from studio_api.models.orm_models import Client, Trainer

TRAINER_BODY = {
    "first_name": "Rhea",
    "last_name": "Runner",
    "email": "Rhea@Studio.test",
    "specialization": "Endurance",
    "hourly_rate": 55,
}


@pytest.mark.api
class TestTrainerCrud:
    def test_admin_creates_trainer(self, api, admin_user, login):
        login("admin@studio.test")
        resp = api.post("/api/trainers", json=TRAINER_BODY)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["email"] == "rhea@studio.test"
        assert body["hourly_rate"] == 55.0
        assert body["status"] == "active"
        assert body["user_id"] is None

    def test_create_links_existing_user_by_email(self, api, db_session, admin_user, client_user, login):
        login("admin@studio.test")
        resp = api.post("/api/trainers", json={**TRAINER_BODY, "email": "client@studio.test"})
        assert resp.status_code == 201
        assert resp.json()["user_id"] == client_user.id

    def test_duplicate_email_is_conflict(self, api, admin_user, login):
        login("admin@studio.test")
        api.post("/api/trainers", json=TRAINER_BODY)
        resp = api.post("/api/trainers", json=TRAINER_BODY)
        assert resp.status_code == 409
        assert resp.json() == {"error": "A trainer with this email already exists"}

    def test_trainer_cannot_create(self, api, trainer_user, login):
        login("trainer@studio.test")
        assert api.post("/api/trainers", json=TRAINER_BODY).status_code == 403

    def test_list_counts_assigned_clients(self, api, db_session, admin_user, trainer_user, login):
        db_session.add_all(
            [
                Client(first_name="A", last_name="One", email="a@studio.test", trainer_id=trainer_user.id),
                Client(first_name="B", last_name="Two", email="b@studio.test", trainer_id=trainer_user.id),
            ]
        )
        db_session.add(Trainer(first_name="Ivy", last_name="Idle", email="ivy@studio.test", status="inactive"))
        db_session.commit()
        login("admin@studio.test")
        resp = api.get("/api/trainers")
        assert resp.status_code == 200
        counts = {t["email"]: t["client_count"] for t in resp.json()}
        assert counts == {"trainer@studio.test": 2, "ivy@studio.test": 0}

        resp = api.get("/api/trainers", params={"status": "inactive"})
        assert [t["first_name"] for t in resp.json()] == ["Ivy"]

    def test_trainer_can_read(self, api, db_session, trainer_user, login):
        own = db_session.scalars(select(Trainer).where(Trainer.user_id == trainer_user.id)).one()
        login("trainer@studio.test")
        resp = api.get(f"/api/trainers/{own.id}")
        assert resp.status_code == 200
        assert resp.json()["last_name"] == "Trainer"

    def test_unknown_trainer_is_404(self, api, admin_user, login):
        login("admin@studio.test")
        resp = api.get("/api/trainers/999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Trainer not found"}

    def test_update_changes_fields(self, api, admin_user, login):
        login("admin@studio.test")
        trainer_id = api.post("/api/trainers", json=TRAINER_BODY).json()["id"]
        resp = api.put(f"/api/trainers/{trainer_id}", json={"status": "inactive", "bio": "Marathoner"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "inactive"
        assert resp.json()["bio"] == "Marathoner"
        assert resp.json()["first_name"] == "Rhea"

    def test_update_to_taken_email_is_conflict(self, api, admin_user, trainer_user, login):
        login("admin@studio.test")
        trainer_id = api.post("/api/trainers", json=TRAINER_BODY).json()["id"]
        resp = api.put(f"/api/trainers/{trainer_id}", json={"email": "trainer@studio.test"})
        assert resp.status_code == 409

    def test_delete_removes_trainer(self, api, db_session, admin_user, login):
        login("admin@studio.test")
        trainer_id = api.post("/api/trainers", json=TRAINER_BODY).json()["id"]
        resp = api.delete(f"/api/trainers/{trainer_id}")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Trainer deleted successfully"}
        assert api.get(f"/api/trainers/{trainer_id}").status_code == 404
