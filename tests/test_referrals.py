import pytest
from sqlalchemy import select

from conftest import create_user
from studio_api.exceptions import NotFound, ValidationFailed
from studio_api.models.orm_models import ClientPoints, ReferralCode, ReferralTracking
from studio_api.schemas import ReferralCodeCreate, ReferralTrackPayload
from studio_api.services.referral_service import MAX_USES_REACHED, ReferralService, custom_code_error


@pytest.fixture
def referrer(db_session):
    return create_user(db_session, "ref@studio.test", "client", first_name="Rita")


@pytest.fixture
def svc(db_session):
    return ReferralService(db_session)


@pytest.mark.unit
@pytest.mark.parametrize(
    "code,ok",
    [("FIT1", True), ("SUMMER_2024", True), ("ABC", False), ("A" * 21, False), ("HAS SPACE", False)],
)
def test_custom_code_rules(code, ok):
    assert (custom_code_error(code) is None) is ok


@pytest.mark.integration
class TestReferralCodes:
    def test_generated_code(self, svc, referrer):
        code = svc.create_code(referrer.id, ReferralCodeCreate())
        assert len(code["code"]) == 8
        assert code["is_custom"] is False
        assert code["points_per_referral"] == 100

    def test_custom_code_is_uppercased(self, svc, referrer):
        code = svc.create_code(referrer.id, ReferralCodeCreate(custom_code="rita-fit"))
        assert code["code"] == "RITA-FIT"
        assert code["is_custom"] is True

    def test_taken_custom_code_offers_suggestions(self, svc, referrer):
        svc.create_code(referrer.id, ReferralCodeCreate(custom_code="RITA"))
        with pytest.raises(ValidationFailed) as exc:
            svc.create_code(referrer.id, ReferralCodeCreate(custom_code="rita"))
        suggestions = exc.value.details["suggestions"]
        assert len(suggestions) == 5
        assert "RITA" not in suggestions

    def test_validate_unknown_code(self, svc):
        assert svc.validate_code("NOPE") == {"valid": False, "reason": "Referral code not found"}


@pytest.mark.integration
class TestReferralTracking:
    def test_max_uses_is_enforced(self, db_session, svc, referrer):
        db_session.add(ReferralCode(user_id=referrer.id, code="ONCE", max_uses=1))
        db_session.commit()
        first = create_user(db_session, "a@studio.test", "client")
        second = create_user(db_session, "b@studio.test", "client")

        svc.track(ReferralTrackPayload(referral_code="once"), user_id=first.id)
        with pytest.raises(ValidationFailed) as exc:
            svc.track(ReferralTrackPayload(referral_code="once"), user_id=second.id)

        assert exc.value.message == MAX_USES_REACHED
        code = db_session.scalars(select(ReferralCode).where(ReferralCode.code == "ONCE")).one()
        assert code.current_uses == 1

    def test_own_code_is_rejected(self, db_session, svc, referrer):
        db_session.add(ReferralCode(user_id=referrer.id, code="SELF"))
        db_session.commit()
        with pytest.raises(ValidationFailed):
            svc.track(ReferralTrackPayload(referral_code="SELF"), user_id=referrer.id)

    def test_same_user_cannot_use_code_twice(self, db_session, svc, referrer):
        db_session.add(ReferralCode(user_id=referrer.id, code="TWICE"))
        db_session.commit()
        friend = create_user(db_session, "a@studio.test", "client")
        svc.track(ReferralTrackPayload(referral_code="TWICE"), user_id=friend.id)
        with pytest.raises(ValidationFailed):
            svc.track(ReferralTrackPayload(referral_code="TWICE"), user_id=friend.id)

    def test_complete_credits_referrer_once(self, db_session, svc, referrer):
        db_session.add(ReferralCode(user_id=referrer.id, code="GIVE", points_per_referral=250))
        db_session.commit()
        friend = create_user(db_session, "a@studio.test", "client")
        svc.track(ReferralTrackPayload(referral_code="GIVE"), user_id=friend.id)

        result = svc.complete_by_code(friend.id, "give")

        assert result["points_awarded"] == 250
        ledger = db_session.scalars(select(ClientPoints).where(ClientPoints.user_id == referrer.id)).one()
        assert ledger.points_balance == 250
        tracking = db_session.scalars(select(ReferralTracking)).one()
        assert tracking.status == "completed"
        with pytest.raises(NotFound):
            svc.complete_by_code(friend.id, "GIVE")


@pytest.mark.api
class TestReferralApi:
    def test_validate_is_public(self, api, db_session, referrer):
        db_session.add(ReferralCode(user_id=referrer.id, code="OPEN", points_per_referral=50))
        db_session.commit()
        resp = api.get("/api/referrals/validate", params={"code": "open"})
        assert resp.status_code == 200
        assert resp.json() == {"valid": True, "code": "OPEN", "points_per_referral": 50}

    def test_validate_requires_code(self, api):
        assert api.get("/api/referrals/validate").status_code == 400

    def test_codes_crud_is_owner_scoped(self, api, db_session, referrer, client_user, login):
        login("ref@studio.test")
        created = api.post("/api/referrals/codes", json={"customCode": "RITA1", "maxUses": 3})
        assert created.status_code == 201, created.text
        code_id = created.json()["code"]["id"]
        assert [c["code"] for c in api.get("/api/referrals/codes").json()["codes"]] == ["RITA1"]

        login("client@studio.test")
        resp = api.put(f"/api/referrals/codes/{code_id}", json={"is_active": False})
        assert resp.status_code == 404
        assert resp.json()["error"] == "Referral code not found or access denied"

    def test_admin_overview_needs_staff(self, api, client_user, login):
        login("client@studio.test")
        assert api.get("/api/admin/referrals").status_code == 403
