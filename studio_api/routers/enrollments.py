import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_enrollment_service, require_staff
from studio_api.exceptions import StudioError
from studio_api.schemas import EnrollmentCreate, EnrollmentUpdate, parse_payload
from studio_api.security.session_claims import TRAINER_ROLE
from studio_api.services.enrollment_service import EnrollmentService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/enrollments")
logger = logging.getLogger(__name__)


@router.get("")
async def api_enrollments_list(
    class_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
    current: Dict[str, Any] = Depends(require_staff),
    svc: EnrollmentService = Depends(get_enrollment_service),
):
    """Enrollments joined with client, class and invoice. Trainers see their own classes."""
    trainer_user_id = current["id"] if current["role"] == TRAINER_ROLE else None
    rows = svc.list_enrollments(class_id=class_id, client_id=client_id, trainer_user_id=trainer_user_id)
    return JSONResponse(rows)


@router.post("")
async def api_enrollments_create(
    request: Request,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: EnrollmentService = Depends(get_enrollment_service),
):
    payload = parse_payload(EnrollmentCreate, await read_json_body(request))
    try:
        return JSONResponse(svc.enroll(payload.class_id, payload.client_id, payload.notes), status_code=201)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/enrollments")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.put("/{enrollment_id}")
async def api_enrollment_update(
    enrollment_id: int,
    request: Request,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: EnrollmentService = Depends(get_enrollment_service),
):
    payload = parse_payload(EnrollmentUpdate, await read_json_body(request))
    try:
        return JSONResponse(svc.update_enrollment(enrollment_id, payload))
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PUT /api/enrollments/{enrollment_id}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.delete("/{enrollment_id}")
async def api_enrollment_delete(
    enrollment_id: int,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: EnrollmentService = Depends(get_enrollment_service),
):
    svc.delete_enrollment(enrollment_id)
    return JSONResponse({"message": "Enrollment deleted successfully"})
