import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import (
    get_email_service,
    get_password_reset_service,
    get_trainer_application_service,
    require_admin,
)
from studio_api.exceptions import StudioError
from studio_api.schemas import TrainerApplicationCreate, TrainerApplicationReview, parse_payload
from studio_api.services.email_service import EmailService
from studio_api.services.password_reset_service import PasswordResetService
from studio_api.services.trainer_application_service import TrainerApplicationService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/trainer-applications")
logger = logging.getLogger(__name__)


@router.post("/apply")
async def api_trainer_application_submit(
    request: Request,
    svc: TrainerApplicationService = Depends(get_trainer_application_service),
):
    payload = parse_payload(TrainerApplicationCreate, await read_json_body(request))
    try:
        application = svc.submit(payload)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/trainer-applications/apply")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"success": True, "application": application}, status_code=201)


@router.get("")
async def api_trainer_applications_list(
    status: Optional[str] = Query(None),
    _current: Dict[str, Any] = Depends(require_admin),
    svc: TrainerApplicationService = Depends(get_trainer_application_service),
):
    return JSONResponse({"success": True, "applications": svc.list_applications(status=status)})


@router.patch("/{application_id}")
async def api_trainer_application_review(
    application_id: int,
    request: Request,
    current: Dict[str, Any] = Depends(require_admin),
    svc: TrainerApplicationService = Depends(get_trainer_application_service),
    resets: PasswordResetService = Depends(get_password_reset_service),
    email: EmailService = Depends(get_email_service),
):
    payload = parse_payload(TrainerApplicationReview, await read_json_body(request))
    try:
        result = svc.review(application_id, payload.status, reviewer_id=current["id"])
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PATCH /api/trainer-applications/{application_id}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    body: Dict[str, Any] = {
        "success": True,
        "message": f"Application {payload.status} successfully",
        "application": result["application"],
    }
    user = result["user"]
    if user is not None and not user.password_hash:
        # New trainer accounts have no password yet; the invite link sets one
        link = resets.reset_link(resets.issue_token(user))
        body["resetLink"] = link
        try:
            email.send_password_reset(user.email, user.first_name, link)
            body["inviteSent"] = True
        except Exception as e:
            logger.warning(f"Trainer invite to {user.email} not sent: {e}")
            body["inviteSent"] = False
    return JSONResponse(body)
