import pytest
from sqlalchemy import func, select

from studio_api.exceptions import ValidationFailed
from studio_api.models.orm_models import ClientReward, PointsTransaction
from studio_api.services.points_service import PointsService


@pytest.mark.integration
class TestPointsLedger:
    def test_add_points_updates_balance_and_history(self, db_session, client_user):
        svc = PointsService(db_session)
        svc.add_points(client_user.id, 120, "bonus", "Welcome bonus")
        result = svc.add_points(client_user.id, 30, "event", reference_id=7)

        assert result["points_balance"] == 150
        assert result["total_earned"] == 150
        assert result["rewards_awarded"] == []
        count = db_session.scalar(select(func.count()).select_from(PointsTransaction))
        assert count == 2

    @pytest.mark.parametrize("points", [0, -5])
    def test_non_positive_points_rejected(self, db_session, client_user, points):
        with pytest.raises(ValidationFailed):
            PointsService(db_session).add_points(client_user.id, points, "bonus")

    def test_unknown_transaction_type_rejected(self, db_session, client_user):
        with pytest.raises(ValidationFailed):
            PointsService(db_session).add_points(client_user.id, 10, "gift")

    def test_milestone_reward_granted_once(self, db_session, client_user):
        svc = PointsService(db_session)
        first = svc.add_points(client_user.id, 500, "bonus")
        assert first["rewards_awarded"] == [
            {"milestone": 500, "reward_type": "discount_percentage", "reward_value": 10}
        ]

        again = svc.add_points(client_user.id, 100, "bonus")
        assert again["rewards_awarded"] == []
        assert db_session.scalar(select(func.count()).select_from(ClientReward)) == 1

    def test_large_credit_crosses_several_milestones(self, db_session, client_user):
        result = PointsService(db_session).add_points(client_user.id, 2500, "adjustment")
        assert [r["milestone"] for r in result["rewards_awarded"]] == [500, 1000, 2000]


@pytest.mark.api
def test_client_points_summary(api, db_session, client_user, login):
    PointsService(db_session).add_points(client_user.id, 600, "bonus", "Opening offer")
    login("client@studio.test")

    resp = api.get("/api/client/points")

    assert resp.status_code == 200
    body = resp.json()
    assert body["points"] == {"points_balance": 600, "total_earned": 600, "total_spent": 0}
    assert body["transactions"][0]["description"] == "Opening offer"
    assert [r["milestone_points"] for r in body["rewards"]] == [500]


@pytest.mark.api
def test_points_summary_for_new_user(api, client_user, login):
    login("client@studio.test")
    body = api.get("/api/client/points").json()
    assert body["points"]["points_balance"] == 0
    assert body["transactions"] == []
