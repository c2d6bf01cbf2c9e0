import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_referral_service, require_staff, require_user
from studio_api.exceptions import StudioError, ValidationFailed
from studio_api.schemas import (
    CustomCodeCheck,
    ReferralCodeCreate,
    ReferralCodeUpdate,
    ReferralCompletePayload,
    ReferralTrackingUpdate,
    ReferralTrackPayload,
    parse_payload,
)
from studio_api.security.session_claims import ADMIN_ROLE
from studio_api.services.referral_service import ReferralService
from studio_api.utils import read_json_body

router = APIRouter()
logger = logging.getLogger(__name__)


# --- Codes ---


@router.get("/api/referrals/codes")
async def api_referral_codes_list(
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    return JSONResponse({"codes": svc.list_codes(current["id"])})


@router.post("/api/referrals/codes")
async def api_referral_codes_create(
    request: Request,
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    payload = parse_payload(ReferralCodeCreate, await read_json_body(request))
    try:
        code = svc.create_code(current["id"], payload)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/referrals/codes")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"code": code}, status_code=201)


@router.put("/api/referrals/codes/{code_id}")
async def api_referral_code_update(
    code_id: int,
    request: Request,
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    payload = parse_payload(ReferralCodeUpdate, await read_json_body(request))
    return JSONResponse({"code": svc.update_code(code_id, current["id"], payload)})


@router.delete("/api/referrals/codes/{code_id}")
async def api_referral_code_delete(
    code_id: int,
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    svc.delete_code(code_id, current["id"])
    return JSONResponse({"message": "Referral code deleted successfully"})


@router.get("/api/referrals/validate")
async def api_referral_validate(
    code: Optional[str] = Query(None),
    svc: ReferralService = Depends(get_referral_service),
):
    if not code:
        raise ValidationFailed("code is required")
    return JSONResponse(svc.validate_code(code))


@router.post("/api/referrals/validate-custom")
async def api_referral_validate_custom(
    request: Request,
    _current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    payload = parse_payload(CustomCodeCheck, await read_json_body(request))
    return JSONResponse(svc.validate_custom(payload.custom_code))


# --- Tracking ---


@router.get("/api/referrals/tracking")
async def api_referral_tracking_list(
    kind: str = Query("sent", alias="type"),
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    return JSONResponse({"tracking": svc.list_tracking(current["id"], kind)})


@router.post("/api/referrals/tracking")
async def api_referral_track(
    request: Request,
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    payload = parse_payload(ReferralTrackPayload, await read_json_body(request))
    try:
        tracking = svc.track(payload, user_id=current["id"], is_admin=current["role"] == ADMIN_ROLE)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/referrals/tracking")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"tracking": tracking}, status_code=201)


@router.put("/api/referrals/tracking")
async def api_referral_tracking_update(
    request: Request,
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    payload = parse_payload(ReferralTrackingUpdate, await read_json_body(request))
    try:
        tracking = svc.update_tracking(
            payload.tracking_id,
            payload.action,
            user_id=current["id"],
            is_admin=current["role"] == ADMIN_ROLE,
        )
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in PUT /api/referrals/tracking")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"tracking": tracking})


@router.post("/api/referrals/complete")
async def api_referral_complete(
    request: Request,
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    payload = parse_payload(ReferralCompletePayload, await read_json_body(request))
    try:
        return JSONResponse(svc.complete_by_code(current["id"], payload.referral_code))
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/referrals/complete")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.get("/api/referrals/complete")
async def api_referral_status(
    code: Optional[str] = Query(None),
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    if not code:
        raise ValidationFailed("code is required")
    return JSONResponse(svc.referral_status(current["id"], code))


# --- Reporting ---


@router.get("/api/referrals/analytics")
async def api_referral_analytics(
    current: Dict[str, Any] = Depends(require_user),
    svc: ReferralService = Depends(get_referral_service),
):
    return JSONResponse(svc.analytics(current["id"]))


@router.get("/api/admin/referrals")
async def api_admin_referrals(
    _current: Dict[str, Any] = Depends(require_staff),
    svc: ReferralService = Depends(get_referral_service),
):
    return JSONResponse(svc.admin_overview())
