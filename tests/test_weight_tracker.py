from datetime import date

import pytest

from studio_api.models.orm_models import BodyWeightEntry


@pytest.mark.api
class TestWeightTracker:
    def test_add_entry(self, api, client_profile, login):
        login("client@studio.test")
        resp = api.post(
            "/api/weight-tracker/add-entry", json={"weight": 72.45, "date": "2025-03-01", "notes": "Morning"}
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["entry"]["weight"] == 72.45
        assert body["entry"]["date"] == "2025-03-01"
        assert body["entry"]["client_id"] == client_profile.id

    def test_one_entry_per_day(self, api, client_profile, login):
        login("client@studio.test")
        api.post("/api/weight-tracker/add-entry", json={"weight": 72, "date": "2025-03-01"})
        resp = api.post("/api/weight-tracker/add-entry", json={"weight": 71, "date": "2025-03-01"})
        assert resp.status_code == 409
        assert resp.json() == {"error": "Weight entry for this date already exists"}

    def test_weight_must_be_positive(self, api, client_profile, login):
        login("client@studio.test")
        resp = api.post("/api/weight-tracker/add-entry", json={"weight": 0, "date": "2025-03-01"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"

    def test_range_query_newest_first(self, api, db_session, client_profile, login):
        for day, weight in ((1, 74), (10, 73), (20, 72)):
            db_session.add(
                BodyWeightEntry(client_id=client_profile.id, weight=weight, entry_date=date(2025, 3, day))
            )
        db_session.commit()
        login("client@studio.test")
        resp = api.get(
            "/api/weight-tracker/client-data", params={"startDate": "2025-03-05", "endDate": "2025-03-31"}
        )
        assert resp.status_code == 200
        assert [(e["date"], e["weight"]) for e in resp.json()["weightData"]] == [
            ("2025-03-20", 72.0),
            ("2025-03-10", 73.0),
        ]

    def test_reversed_range_is_rejected(self, api, client_profile, login):
        login("client@studio.test")
        resp = api.get(
            "/api/weight-tracker/client-data", params={"startDate": "2025-03-31", "endDate": "2025-03-01"}
        )
        assert resp.status_code == 400

    def test_client_without_profile_is_404(self, api, client_user, login):
        login("client@studio.test")
        resp = api.post("/api/weight-tracker/add-entry", json={"weight": 70, "date": "2025-03-01"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Client not found"}

    def test_staff_is_denied(self, api, trainer_user, login):
        login("trainer@studio.test")
        resp = api.get(
            "/api/weight-tracker/client-data", params={"startDate": "2025-03-01", "endDate": "2025-03-31"}
        )
        assert resp.status_code == 403
